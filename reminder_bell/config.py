from datetime import time
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Logging
    LOG_LEVEL: str = "INFO"

    # Delivery window (local time, inclusive)
    WINDOW_START: time = time(18, 40)
    WINDOW_END: time = time(19, 20)
    TIMEZONE: str | None = None  # e.g. "Asia/Jerusalem"; None = system local time

    # Pacing between outbound messages (seconds)
    PACE_MIN_SECONDS: float = 2.0
    PACE_MAX_SECONDS: float = 8.0

    # WhatsApp Web transport
    WHATSAPP_URL: str = "https://web.whatsapp.com"
    WHATSAPP_PROFILE_DIR: Path = Path("./data/whatsapp-session")
    WHATSAPP_HEADLESS: bool = False
    SURFACE_TIMEOUT_SECONDS: float = 10.0
    HANDSHAKE_TIMEOUT_SECONDS: float = 60.0
    SETTLE_DELAY_SECONDS: float = 3.0
    SEARCH_TIMEOUT_SECONDS: float = 5.0
    SEARCH_RESULT_WAIT_SECONDS: float = 2.0
    COMPOSE_TIMEOUT_SECONDS: float = 5.0
    SELF_CHAT_NAME: str = "Me"

    # Files
    CONTACTS_FILE: Path = Path("./data/contacts.json")
    STATE_FILE: Path = Path("./data/state.json")
    LOG_FILE: Path | None = Path("./data/logs/app.log")
    OUTCOME_LOG_FILE: Path = Path("./data/logs/outcomes.jsonl")
    GOOGLE_CREDENTIALS_FILE: Path = Path("./credentials/credentials.json")
    GOOGLE_TOKEN_FILE: Path = Path("./credentials/token.json")

    # Google Calendar
    CALENDAR_ID: str = "primary"
    CALENDAR_DAYS_AHEAD: int = 1
    REMINDER_MARKER: str = "🔔"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def pace_bounds(self) -> tuple[float, float]:
        """Pacing interval as (min, max), tolerating swapped values."""
        low, high = self.PACE_MIN_SECONDS, self.PACE_MAX_SECONDS
        return (low, high) if low <= high else (high, low)


settings = Settings()
