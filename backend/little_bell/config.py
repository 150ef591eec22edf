"""Application configuration using Pydantic Settings."""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SQLITE_DRIVER_PREFIX = "sqlite+aiosqlite:///"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # Public URL used to build pixel and click links
    base_url: str = "http://localhost:3000"

    # Store
    database_url: str = "sqlite:data/tracking.db"
    store_write_timeout: float = 5.0  # seconds a writer may queue for the write lock
    store_busy_timeout_ms: int = 5000  # SQLite busy_timeout for cross-process locks

    # Dashboard
    recent_events_limit: int = 50

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def get_database_url(self) -> str:
        """Get the SQLAlchemy URL for the store, always on the aiosqlite driver."""
        url = self.database_url.strip()
        if url.startswith(SQLITE_DRIVER_PREFIX) or url == "sqlite+aiosqlite://":
            return url
        if url in (":memory:", "sqlite::memory:", "sqlite://"):
            return "sqlite+aiosqlite://"
        if url.startswith("sqlite:///"):
            return SQLITE_DRIVER_PREFIX + url[len("sqlite:///"):]
        if url.startswith("sqlite:"):
            return SQLITE_DRIVER_PREFIX + url[len("sqlite:"):]
        # Bare filesystem path
        return SQLITE_DRIVER_PREFIX + url

    @property
    def database_path(self) -> Optional[Path]:
        """Filesystem location of the store file, or None for an in-memory store."""
        return database_path_from_url(self.get_database_url)


def database_path_from_url(url: str) -> Optional[Path]:
    """Extract the file path from an aiosqlite URL."""
    if not url.startswith(SQLITE_DRIVER_PREFIX):
        return None
    path = url[len(SQLITE_DRIVER_PREFIX):].split("?", 1)[0]
    if not path or path == ":memory:":
        return None
    return Path(path)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
