from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

USAGE_REFRESH_MODES = {"async", "sync", "disabled"}


class Settings(BaseSettings):
    """Application settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., APP_NAME, DEBUG,
    DATA_DIR, DB_FILENAME, INTERNAL_API_TOKEN, USAGE_REFRESH_MODE).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "Field Travel Expense Tracker"
    debug: bool = True
    version: str = "0.1.0"

    # Data & persistence
    data_dir: Path = Path("data")
    db_filename: str = "tripcost.sqlite3"
    db_path: Optional[Path] = None  # derived if not provided
    db_busy_timeout_seconds: float = 30.0

    # Budget usage refresh boundary
    internal_api_token: str = "change-me-internal-token"
    # Allowed: 'async' (background worker), 'sync' (inline), 'disabled'
    usage_refresh_mode: str = "async"

    default_notification_threshold: int = 80

    def init_post_load(self) -> None:
        """Finalize derived fields and ensure directories exist."""
        if self.db_path is None:
            self.db_path = self.data_dir / self.db_filename
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        if self.usage_refresh_mode not in USAGE_REFRESH_MODES:
            raise ValueError(
                f"Unsupported usage_refresh_mode '{self.usage_refresh_mode}'. Allowed: {USAGE_REFRESH_MODES}"
            )
        if not self.internal_api_token.strip():
            raise ValueError("internal_api_token cannot be empty")
        if not (1 <= self.default_notification_threshold <= 100):
            raise ValueError("default_notification_threshold must be within 1..100")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
