"""
WhatsApp Web transport driven through a Playwright persistent browser context.

Keeps the authenticated session in a profile directory so the QR pairing is
only needed once. All waits are bounded; UI faults during search and send are
reported as False, only initialization failures are raised.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from pathlib import Path

from playwright.async_api import (
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from reminder_bell.config import Settings
from reminder_bell.infrastructure.observability.logging import get_logger
from reminder_bell.services.transport.base import (
    USABLE_STATES,
    InitializationError,
    PreconditionError,
    SessionState,
)
from reminder_bell.services.transport.waits import first_satisfied

logger = get_logger(__name__)

# WhatsApp Web UI selectors
QR_CODE_SELECTOR = 'canvas[aria-label="Scan me!"]'
CHAT_LIST_SELECTOR = '[data-testid="chat-list"]'
SEARCH_BOX_SELECTOR = '[data-testid="chat-list-search"]'
SEARCH_RESULT_SELECTOR = '[data-testid="cell-frame-title"]'
COMPOSE_BOX_SELECTOR = '[data-testid="conversation-compose-box-input"]'

VIEWPORT = {"width": 1280, "height": 720}
TYPE_SETTLE_SECONDS = 0.5
AFTER_SELECT_SECONDS = 1.0
AFTER_SEND_SECONDS = 1.0
CLEAR_SEARCH_SECONDS = 0.5

Sleep = Callable[[float], Awaitable[None]]


class WhatsAppWebTransport:
    """
    Chat transport over a single WhatsApp Web session.

    Lifecycle: uninitialized → launching → awaiting_handshake → ready
    ⇄ conversation_selected → closed.
    """

    def __init__(
        self,
        profile_dir: Path,
        url: str = "https://web.whatsapp.com",
        headless: bool = False,
        surface_timeout: float = 10.0,
        handshake_timeout: float = 60.0,
        settle_delay: float = 3.0,
        search_timeout: float = 5.0,
        search_result_wait: float = 2.0,
        compose_timeout: float = 5.0,
        pace_bounds: tuple[float, float] = (2.0, 8.0),
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.profile_dir = Path(profile_dir)
        self.url = url
        self.headless = headless
        self.surface_timeout = surface_timeout
        self.handshake_timeout = handshake_timeout
        self.settle_delay = settle_delay
        self.search_timeout = search_timeout
        self.search_result_wait = search_result_wait
        self.compose_timeout = compose_timeout
        self.pace_bounds = pace_bounds
        self._sleep = sleep
        self._rng = rng or random.Random()

        self._state = SessionState.UNINITIALIZED
        self._playwright: Playwright | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "WhatsAppWebTransport":
        return cls(
            profile_dir=settings.WHATSAPP_PROFILE_DIR,
            url=settings.WHATSAPP_URL,
            headless=settings.WHATSAPP_HEADLESS,
            surface_timeout=settings.SURFACE_TIMEOUT_SECONDS,
            handshake_timeout=settings.HANDSHAKE_TIMEOUT_SECONDS,
            settle_delay=settings.SETTLE_DELAY_SECONDS,
            search_timeout=settings.SEARCH_TIMEOUT_SECONDS,
            search_result_wait=settings.SEARCH_RESULT_WAIT_SECONDS,
            compose_timeout=settings.COMPOSE_TIMEOUT_SECONDS,
            pace_bounds=settings.pace_bounds(),
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_usable(self) -> bool:
        return self._state in USABLE_STATES and self._page is not None

    def _require_usable(self, operation: str) -> Page:
        if not self.is_usable:
            raise PreconditionError(
                f"{operation} requires a ready session (state: {self._state})", state=self._state
            )
        return self._page

    async def initialize(self) -> None:
        """
        Launch the browser, open WhatsApp Web and wait until chats are visible.

        Raises:
            InitializationError: If launching fails, no known surface appears
                within the short wait, or the QR handshake is not completed
                within the handshake ceiling.
        """
        if self._state != SessionState.UNINITIALIZED:
            raise PreconditionError(
                f"initialize called in state {self._state}", state=self._state
            )

        self._state = SessionState.LAUNCHING
        logger.info("Launching WhatsApp Web", profile_dir=str(self.profile_dir))

        try:
            self.profile_dir.mkdir(parents=True, exist_ok=True)
            self._playwright = await async_playwright().start()
            self._context = await self._playwright.chromium.launch_persistent_context(
                str(self.profile_dir),
                headless=self.headless,
                viewport=VIEWPORT,
            )
            pages = self._context.pages
            self._page = pages[0] if pages else await self._context.new_page()
            await self._page.goto(self.url)
            logger.info("Navigated to WhatsApp Web", url=self.url)
        except Exception as e:
            await self._abort_initialization()
            raise InitializationError(f"Failed to launch WhatsApp Web: {e}", stage="launch") from e

        self._state = SessionState.AWAITING_HANDSHAKE
        await self._await_handshake()

        await self._sleep(self.settle_delay)
        self._state = SessionState.READY
        logger.info("WhatsApp Web is ready")

    async def _await_handshake(self) -> None:
        page = self._page
        surface_ms = self.surface_timeout * 1000

        surface = await first_satisfied(
            {
                "chat_list": lambda: page.wait_for_selector(CHAT_LIST_SELECTOR, timeout=surface_ms),
                "qr_code": lambda: page.wait_for_selector(QR_CODE_SELECTOR, timeout=surface_ms),
            },
            timeout=self.surface_timeout,
        )

        if surface is None:
            await self._abort_initialization()
            raise InitializationError(
                "WhatsApp Web did not show a chat list or QR code", stage="surface"
            )

        if surface == "qr_code":
            logger.info(
                "QR code detected - please scan with your phone",
                timeout_seconds=self.handshake_timeout,
            )
            try:
                await page.wait_for_selector(
                    CHAT_LIST_SELECTOR, timeout=self.handshake_timeout * 1000
                )
            except PlaywrightError as e:
                await self._abort_initialization()
                raise InitializationError(
                    "QR code was not scanned in time", stage="handshake"
                ) from e
            logger.info("QR code scanned successfully")

    async def _abort_initialization(self) -> None:
        logger.error("WhatsApp Web initialization failed", state=self._state.value)
        await self.close()

    async def locate_conversation(self, identifier: str) -> bool:
        """
        Search for a conversation and select it.

        Returns:
            True if a matching conversation was selected, False otherwise.
            The search box is cleared on every path.
        """
        page = self._require_usable("locate_conversation")
        self._state = SessionState.READY

        try:
            search_box = await page.wait_for_selector(
                SEARCH_BOX_SELECTOR, timeout=self.search_timeout * 1000
            )
            await search_box.click()
            await page.keyboard.type(identifier)
            await self._sleep(self.search_result_wait)

            result = await page.query_selector(SEARCH_RESULT_SELECTOR)
            if result is None:
                logger.warning("Chat not found", identifier=identifier)
                return False

            await result.click()
            await self._sleep(AFTER_SELECT_SECONDS)
            self._state = SessionState.CONVERSATION_SELECTED
            logger.info("Found chat", identifier=identifier)
            return True

        except PlaywrightError as e:
            logger.error(
                "Error finding chat",
                identifier=identifier,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        finally:
            await self._clear_search()

    async def _clear_search(self) -> None:
        try:
            await self._page.keyboard.press("Escape")
            await self._sleep(CLEAR_SEARCH_SECONDS)
        except PlaywrightError as e:
            logger.warning("Could not clear search", error=str(e))

    async def send_text(self, text: str) -> bool:
        """
        Type and send a message in the selected conversation.

        Raises:
            PreconditionError: If no conversation is selected.

        Returns:
            True once the message was submitted and the compose box emptied.
        """
        page = self._require_usable("send_text")
        if self._state != SessionState.CONVERSATION_SELECTED:
            raise PreconditionError("send_text requires a selected conversation", state=self._state)

        try:
            compose_box = await page.wait_for_selector(
                COMPOSE_BOX_SELECTOR, timeout=self.compose_timeout * 1000
            )
        except PlaywrightTimeoutError:
            logger.error("Message box not found", timeout_seconds=self.compose_timeout)
            return False
        except PlaywrightError as e:
            logger.error("Message box unavailable", error=str(e))
            return False

        if compose_box is None:
            logger.error("Message box not found")
            return False

        try:
            await compose_box.click()
            # Enter would send each line separately; Shift+Enter keeps one message
            for index, line in enumerate(text.split("\n")):
                if index:
                    await page.keyboard.press("Shift+Enter")
                if line:
                    await page.keyboard.type(line)
            await self._sleep(TYPE_SETTLE_SECONDS)

            await page.keyboard.press("Enter")
            await self._sleep(AFTER_SEND_SECONDS)

            leftover = (await compose_box.inner_text()).strip()
            if leftover:
                logger.error("Message still in compose box after send", chars=len(leftover))
                return False

            logger.info("Message sent", chars=len(text))
            return True

        except PlaywrightError as e:
            logger.error("Failed to send message", error=str(e), error_type=type(e).__name__)
            return False

    async def pace(self) -> float:
        """Wait a random, human-like interval between outbound messages."""
        low, high = self.pace_bounds
        delay = self._rng.uniform(low, high)
        logger.info("Pacing before next message", delay_seconds=round(delay, 2))
        await self._sleep(delay)
        return delay

    async def close(self) -> None:
        """Release the browser session; safe to call repeatedly from any state."""
        if self._state == SessionState.UNINITIALIZED and self._playwright is None:
            return

        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.warning("Error closing browser context", error=str(e))
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except PlaywrightError as e:
                logger.warning("Error stopping Playwright", error=str(e))

        was_open = self._context is not None
        self._context = None
        self._page = None
        self._playwright = None
        self._state = SessionState.CLOSED
        if was_open:
            logger.info("WhatsApp browser closed")
