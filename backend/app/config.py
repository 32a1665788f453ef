# backend/app/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    database_url: str = "sqlite:///./booking.db"
    redis_url: str = "redis://localhost:6379/0"

    # redis | sql | memory
    store_backend: str = "redis"
    redis_socket_timeout: float = 2.0

    # Waitlist policy
    waitlist_notification_minutes: int = 10
    waitlist_tick_enabled: bool = True
    waitlist_tick_interval: int = 60  # seconds between sweeps
    waitlist_tick_workers: int = 4
    scope_lock_timeout: float = 5.0

    # Transient store failures
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.2

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
