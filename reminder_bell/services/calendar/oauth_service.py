"""
Google OAuth Service for read-only Calendar access.
Loads the installed-app client secrets and the saved token, refreshes expired
access tokens, and supports the one-time interactive authorization.
"""

import asyncio
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from reminder_bell.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# OAuth configuration
GOOGLE_OAUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 10  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2  # 2, 4, 8 seconds
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
EXPIRY_BUFFER = timedelta(minutes=2)


class GoogleOAuthError(Exception):
    """Custom exception for Google OAuth-related errors."""

    def __init__(
        self, message: str, error_code: str | None = None, response_data: dict | None = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.response_data = response_data or {}


class ClientSecrets(BaseModel):
    client_id: str
    client_secret: str
    redirect_uris: list[str] = ["http://localhost"]


class StoredToken(BaseModel):
    """Token as persisted in token.json."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scope: str = ""
    expires_at: datetime | None = None

    def needs_refresh(self, now: datetime | None = None) -> bool:
        if not self.expires_at:
            return False
        now = now or datetime.now(UTC)
        return now + EXPIRY_BUFFER >= self.expires_at

    @classmethod
    def from_token_response(cls, data: dict, previous_refresh_token: str | None = None):
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            # Google does not always return a new refresh token on refresh
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope", ""),
            expires_at=(
                datetime.now(UTC) + timedelta(seconds=int(expires_in)) if expires_in else None
            ),
        )


class GoogleOAuthService:
    """
    Service for Google OAuth 2.0 operations for a single installed-app user.

    Handles URL generation, code exchange and access-token refresh with
    retry logic, keeping token.json up to date.
    """

    def __init__(self, credentials_file: Path, token_file: Path):
        self.credentials_file = Path(credentials_file)
        self.token_file = Path(token_file)
        self._secrets: ClientSecrets | None = None

    @property
    def secrets(self) -> ClientSecrets:
        if self._secrets is None:
            self._secrets = self._load_secrets()
        return self._secrets

    @property
    def redirect_uri(self) -> str:
        return self.secrets.redirect_uris[0]

    def _load_secrets(self) -> ClientSecrets:
        """Read client secrets downloaded from the Google Cloud console."""
        try:
            raw = json.loads(self.credentials_file.read_text(encoding="utf-8"))
            section = raw.get("installed") or raw.get("web") or raw
            return ClientSecrets.model_validate(section)
        except (OSError, ValueError, ValidationError) as e:
            raise GoogleOAuthError(
                f"Could not read OAuth client file {self.credentials_file}: {e}"
            ) from e

    def load_token(self) -> StoredToken:
        try:
            return StoredToken.model_validate_json(self.token_file.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise GoogleOAuthError(
                "No saved token. Run the 'authorize' job first.", error_code="no_token"
            ) from e
        except (OSError, ValueError, ValidationError) as e:
            raise GoogleOAuthError(f"Could not read token file {self.token_file}: {e}") from e

    def save_token(self, token: StoredToken) -> None:
        try:
            self.token_file.parent.mkdir(parents=True, exist_ok=True)
            self.token_file.write_text(token.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise GoogleOAuthError(f"Could not save token file {self.token_file}: {e}") from e
        logger.info("Token saved successfully", path=str(self.token_file))

    async def get_access_token(self) -> str:
        """Return a valid access token, refreshing and persisting it if needed."""
        token = self.load_token()
        if not token.needs_refresh():
            return token.access_token

        if not token.refresh_token:
            raise GoogleOAuthError(
                "Access token expired and no refresh token is stored. Run 'authorize' again.",
                error_code="no_refresh_token",
            )

        refreshed = await self.refresh_access_token(token.refresh_token)
        self.save_token(refreshed)
        return refreshed.access_token

    async def _post_with_retry(self, url: str, data: dict, operation: str) -> httpx.Response:
        """
        Perform POST request with retry/backoff handling.

        Args:
            url: Target URL
            data: Form data payload
            operation: Operation name for logging context
        """
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            for attempt in range(1, MAX_RETRIES + 1):
                try:
                    response = await client.post(url, data=data, headers=headers)

                    if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                        wait_time = BACKOFF_FACTOR**attempt
                        logger.warning(
                            "Google OAuth transient status",
                            operation=operation,
                            status_code=response.status_code,
                            attempt=attempt,
                            wait_time=wait_time,
                        )
                        await asyncio.sleep(wait_time)
                        continue

                    return response

                except httpx.RequestError as exc:
                    if attempt == MAX_RETRIES:
                        raise

                    wait_time = BACKOFF_FACTOR**attempt
                    logger.warning(
                        "Google OAuth request error, retrying",
                        operation=operation,
                        attempt=attempt,
                        wait_time=wait_time,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    await asyncio.sleep(wait_time)

        raise GoogleOAuthError(f"{operation} failed: Unknown error")

    def generate_oauth_url(self) -> str:
        """Authorization URL the operator opens once to grant calendar access."""
        params = {
            "client_id": self.secrets.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(CALENDAR_SCOPES),
            "response_type": "code",
            "access_type": "offline",  # Request refresh token
            "prompt": "consent",  # Force consent screen to get refresh token
        }
        return f"{GOOGLE_OAUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, authorization_code: str) -> StoredToken:
        """
        Exchange authorization code for access and refresh tokens.

        Raises:
            GoogleOAuthError: If token exchange fails
        """
        data = {
            "client_id": self.secrets.client_id,
            "client_secret": self.secrets.client_secret,
            "code": authorization_code.strip(),
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }

        logger.info("Exchanging authorization code for calendar tokens")
        try:
            response = await self._post_with_retry(GOOGLE_TOKEN_URL, data, "code_exchange")
        except httpx.RequestError as e:
            raise GoogleOAuthError(f"Network error during token exchange: {e}") from e

        return StoredToken.from_token_response(
            self._handle_token_response(response, "code_exchange")
        )

    async def refresh_access_token(self, refresh_token: str) -> StoredToken:
        """
        Refresh access token using refresh token.

        Raises:
            GoogleOAuthError: If token refresh fails
        """
        data = {
            "client_id": self.secrets.client_id,
            "client_secret": self.secrets.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        logger.info("Refreshing calendar access token")
        try:
            response = await self._post_with_retry(GOOGLE_TOKEN_URL, data, "token_refresh")
        except httpx.RequestError as e:
            logger.error(
                "Network error during token refresh",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GoogleOAuthError(f"Network error during token refresh: {e}") from e

        return StoredToken.from_token_response(
            self._handle_token_response(response, "token_refresh"),
            previous_refresh_token=refresh_token,
        )

    def _handle_token_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Validate a token endpoint response.

        Raises:
            GoogleOAuthError: If response is invalid or contains errors
        """
        if not response.is_success:
            try:
                error_data = response.json()
            except ValueError:
                logger.error(
                    f"Google {operation} failed with non-JSON response",
                    status_code=response.status_code,
                    response_text=response.text[:200],
                )
                raise GoogleOAuthError(
                    f"Google OAuth service error (HTTP {response.status_code})"
                ) from None

            error_code = error_data.get("error", "unknown_error")
            logger.error(
                f"Google {operation} failed",
                status_code=response.status_code,
                error_code=error_code,
                error_description=error_data.get("error_description"),
            )
            raise GoogleOAuthError(
                self._map_google_error(error_code),
                error_code=error_code,
                response_data=error_data,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GoogleOAuthError(f"Failed to parse Google response: {e}") from e

        if not data.get("access_token"):
            raise GoogleOAuthError("Invalid token response from Google")

        logger.info(
            f"Google {operation} successful",
            expires_in=data.get("expires_in"),
            has_refresh_token=bool(data.get("refresh_token")),
        )
        return data

    def _map_google_error(self, error_code: str) -> str:
        """Map Google OAuth error codes to operator-facing messages."""
        error_messages = {
            "access_denied": "Calendar access was denied during authorization.",
            "invalid_grant": "Authorization expired or was revoked. Run 'authorize' again.",
            "invalid_client": "OAuth client configuration error. Check credentials.json.",
            "invalid_request": "Invalid OAuth request.",
            "unauthorized_client": "OAuth client is not authorized for this flow.",
        }

        return error_messages.get(error_code, f"Google OAuth failed ({error_code}).")
