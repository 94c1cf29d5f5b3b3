"""
One-time interactive Google Calendar authorization.
Prints the consent URL, reads the authorization code from stdin and stores the
resulting token for later unattended runs.
"""

from collections.abc import Callable

from reminder_bell.config import settings
from reminder_bell.infrastructure.observability.logging import get_logger
from reminder_bell.services.calendar.oauth_service import GoogleOAuthError, GoogleOAuthService

logger = get_logger(__name__)


async def run_authorize(
    oauth_service: GoogleOAuthService | None = None,
    prompt: Callable[[str], str] = input,
) -> None:
    """Walk the operator through the consent screen and save the token."""
    oauth_service = oauth_service or GoogleOAuthService(
        settings.GOOGLE_CREDENTIALS_FILE, settings.GOOGLE_TOKEN_FILE
    )

    url = oauth_service.generate_oauth_url()
    print("Authorize this app by visiting this url:", url)
    code = prompt("Enter the code from that page here: ").strip()
    if not code:
        raise GoogleOAuthError("No authorization code entered")

    token = await oauth_service.exchange_code_for_tokens(code)
    oauth_service.save_token(token)
    logger.info("Calendar authorization completed", has_refresh_token=bool(token.refresh_token))
