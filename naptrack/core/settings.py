"""App settings: loaded from environment variables with defaults."""

import os
from typing import List
from dotenv import load_dotenv
from naptrack.utils.time_math import duration_token_to_timedelta

load_dotenv()


class Settings:
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    DATABASE_URL: str = os.getenv("DB_CONNECTION_STRING")
    # Run db/schema.sql (idempotent) on startup
    DB_CREATE_SCHEMA: bool = os.getenv("DB_CREATE_SCHEMA", "true").lower() == "true"

    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]
    CORS_EXTRA_ORIGINS: str = os.getenv("CORS_EXTRA_ORIGINS", "")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Wall-clock zone the HTTP layer uses to build "now" before calling the core
    CHILD_TIMEZONE: str = os.getenv("CHILD_TIMEZONE", "America/New_York")

    HISTORY_WINDOW: str = os.getenv("HISTORY_WINDOW", "7d")
    TRANSITION_SYNC_INTERVAL: str = os.getenv("TRANSITION_SYNC_INTERVAL", "6h")

    @property
    def history_window_days(self) -> int:
        return max(1, duration_token_to_timedelta(self.HISTORY_WINDOW).days)

    @property
    def transition_sync_seconds(self) -> int:
        return int(duration_token_to_timedelta(self.TRANSITION_SYNC_INTERVAL).total_seconds())


settings = Settings()
