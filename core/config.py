"""Define configuration settings using Pydantic and manage environment variables."""

from logging import getLogger
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = getLogger(__name__)

load_dotenv("dev.env")


class Settings(BaseSettings):
    """Class defining configuration settings using Pydantic."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Storage locations
    PROJECTS_FILE: str = "config.json"
    DATA_DIR: str = "data"
    LOGS_DIR: str = "logs"
    PIDS_DIR: str = "pids"

    # Fetching
    MAX_RETRIES: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 2.0
    USE_BROWSER: bool = True
    HEADLESS: bool = True
    BROWSER_MAX_USES: int = 8
    NAVIGATION_TIMEOUT_SECONDS: float = 30.0

    # Cross-worker coordination
    MIN_REQUEST_GAP_SECONDS: float = 2 * 60
    MAX_CAPTCHA_COOLDOWN_SECONDS: float = 2 * 60 * 60

    # Scheduling
    DEFAULT_INTERVAL_MINUTES: int = 20
    INTERVAL_JITTER_RATIO: float = 0.15
    STARTUP_DELAY_MAX_SECONDS: float = 60.0
    QUIET_HEARTBEAT_HOURS: float = 24.0
    STOP_TIMEOUT_SECONDS: float = 5.0

    MAX_SAVED_ITEMS: int = 500

    # Telegram
    TELEGRAM_API_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_IDS: str = ""

    @field_validator("MAX_RETRIES", "MAX_SAVED_ITEMS", "BROWSER_MAX_USES")
    def positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("INTERVAL_JITTER_RATIO")
    def jitter_ratio(cls, value: float) -> float:
        if not 0 <= value < 1:
            raise ValueError("INTERVAL_JITTER_RATIO must be within [0, 1)")
        return value

    @property
    def chat_ids(self) -> List[str]:
        return [c.strip() for c in self.TELEGRAM_CHAT_IDS.split(",") if c.strip()]


settings = Settings()
