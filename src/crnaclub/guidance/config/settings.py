from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.
    Loaded from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    LOG_LEVEL: str = "INFO"

    # Database (used by the "database" state backend)
    DATABASE_URL: str = "sqlite+aiosqlite:///./guidance.db"

    # State persistence
    STATE_BACKEND: Literal["memory", "file", "database"] = "memory"
    STATE_DIR: str = "./.guidance_state"

    # Rule catalog; None means the packaged seed/catalog/rules.yaml
    CATALOG_PATH: Optional[str] = None

    # Suppression windows
    DISMISS_WINDOW_HOURS: int = 24
    DEFAULT_SNOOZE_DAYS: int = 7

    # Advisory: callers may offer a permanent dismiss after this many dismissals
    PERMANENT_DISMISS_AFTER: int = 3

    # Feed limits (None or 0 disables)
    MAX_DASHBOARD_NUDGES: Optional[int] = 3
    MAX_INLINE_PER_PAGE: Optional[int] = 2

    # Analytics log retention, applied on save
    INTERACTION_RETENTION_DAYS: int = 30


settings = Settings()
