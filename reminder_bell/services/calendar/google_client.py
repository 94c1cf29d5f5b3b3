"""
Google Calendar API client for reading upcoming events.
Low-level Calendar API client: request retry, error mapping, and conversion to
CalendarEvent domain models.
"""

import asyncio
from collections.abc import Awaitable, Callable

import httpx

from reminder_bell.infrastructure.observability.logging import get_logger
from reminder_bell.models.domain.calendar_domain import CalendarEvent
from reminder_bell.models.domain.reminder_domain import TimeRange

logger = get_logger(__name__)

# Google Calendar API configuration
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_PRIMARY = "primary"  # User's primary calendar
MAX_RESULTS_PER_PAGE = 250

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 30  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

TokenProvider = Callable[[], Awaitable[str]]


class CalendarFetchError(Exception):
    """Raised when upcoming events cannot be fetched."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class GoogleCalendarService:
    """
    Read-only Google Calendar client.

    Fetches events for a time window with retry logic and maps API errors to
    CalendarFetchError.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        calendar_id: str = CALENDAR_PRIMARY,
        client: httpx.AsyncClient | None = None,
    ):
        self._token_provider = token_provider
        self.calendar_id = calendar_id
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        """Create async HTTP client for Calendar API."""
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        return httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Calendar API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Calendar API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Calendar API retry loop exhausted")

    def _get_auth_headers(self, access_token: str) -> dict:
        """Get authorization headers for Calendar API requests."""
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Handle and validate Calendar API response.

        Args:
            response: HTTP response from Calendar API
            operation: Operation name for logging

        Returns:
            dict: Parsed response data

        Raises:
            CalendarFetchError: If response contains errors
        """
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                logger.error(f"Failed to parse Calendar API {operation} response", error=str(e))
                raise CalendarFetchError(f"Invalid response format: {e}") from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                f"Calendar API {operation} failed with non-JSON response",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise CalendarFetchError(
                f"Calendar API error (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from None

        error_info = error_data.get("error", {})
        error_code = str(error_info.get("code", response.status_code))
        error_message = error_info.get("message", "Unknown Calendar API error")

        logger.error(
            f"Calendar API {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message,
        )

        raise CalendarFetchError(
            self._map_calendar_error(error_code, error_message),
            error_code=error_code,
            status_code=response.status_code,
            response_data=error_data,
        )

    def _map_calendar_error(self, error_code: str, error_message: str) -> str:
        """Map Calendar API error codes to operator-facing messages."""
        error_mappings = {
            "403": "Calendar access denied. Please check permissions.",
            "404": "Calendar not found.",
            "400": "Invalid calendar request format.",
            "401": "Calendar authorization expired. Run 'authorize' again.",
            "429": "Too many calendar requests. Please try again later.",
            "500": "Google Calendar service temporarily unavailable.",
        }

        return error_mappings.get(error_code, f"Calendar error: {error_message}")

    async def fetch_upcoming_events(self, window: TimeRange) -> list[CalendarEvent]:
        """
        List events starting inside the window, ordered by start time.

        Args:
            window: Time range to query

        Returns:
            List[CalendarEvent]: Events in the window (recurring events expanded)

        Raises:
            CalendarFetchError: If the events cannot be fetched
        """
        try:
            access_token = await self._token_provider()
            url = f"{CALENDAR_API_BASE_URL}/calendars/{self.calendar_id}/events"
            headers = self._get_auth_headers(access_token)
            params = {
                "timeMin": window.start.isoformat(),
                "timeMax": window.end.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
                "maxResults": MAX_RESULTS_PER_PAGE,
            }

            logger.info(
                "Listing calendar events",
                calendar_id=self.calendar_id,
                time_min=params["timeMin"],
                time_max=params["timeMax"],
            )

            events: list[CalendarEvent] = []
            while True:
                response = await self._request_with_retry("GET", url, headers=headers, params=params)
                data = self._handle_api_response(response, "list_events")
                events.extend(CalendarEvent(item) for item in data.get("items", []))

                page_token = data.get("nextPageToken")
                if not page_token:
                    break
                params["pageToken"] = page_token

            logger.info(
                "Events listed successfully",
                calendar_id=self.calendar_id,
                event_count=len(events),
            )
            return events

        except CalendarFetchError:
            raise
        except Exception as e:
            logger.error(
                "Unexpected error listing events",
                calendar_id=self.calendar_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise CalendarFetchError(f"Failed to list events: {e}") from e
