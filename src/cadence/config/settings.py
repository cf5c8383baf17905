"""Application settings loaded from environment variables and .env files."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_", env_file=".env", extra="ignore"
    )

    url: str = Field(
        default="sqlite+aiosqlite:///./cadence.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Log every SQL statement")
    pool_pre_ping: bool = Field(default=True)
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)
    # Hey future me - Alembic owns the schema in production. Turning this on makes
    # startup call metadata.create_all(), which is handy for throwaway SQLite files.
    create_schema: bool = Field(default=True)


class ServerSettings(BaseSettings):
    """Remote media server connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER_", env_file=".env", extra="ignore"
    )

    dialect: Literal["ampache", "subsonic"] = Field(
        default="subsonic", description="Wire protocol spoken by the server"
    )
    url: str = Field(default="http://localhost:4533")
    username: str = Field(default="")
    password: str = Field(default="")
    api_version: str | None = Field(
        default=None,
        description="Protocol version sent to the server (dialect default if unset)",
    )
    client_name: str = Field(default="cadence")
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    retry_backoff: float = Field(default=0.5, ge=0)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class SyncSettings(BaseSettings):
    """Library synchronization tuning."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_", env_file=".env", extra="ignore"
    )

    page_size: int = Field(
        default=500, ge=1, description="Records requested per remote page"
    )
    max_concurrent_batches: int = Field(
        default=5, ge=1, description="Pages allowed in flight at the same time"
    )
    prune_stale_entities: bool = Field(
        default=True,
        description="Delete entities a completed full sync did not see again",
    )
    auto_sync_interval_hours: int = Field(
        default=0,
        ge=0,
        description="Run a full sync every N hours in the background, 0 disables it",
    )
    event_history_size: int = Field(
        default=200, ge=1, description="Progress events kept for the status endpoint"
    )


class ObservabilitySettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="OBSERVABILITY_", env_file=".env", extra="ignore"
    )

    log_json_format: bool = Field(default=False)


class Settings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = Field(default="cadence")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value

    def sqlite_db_path(self) -> Path | None:
        """Return the database file path for file-backed SQLite URLs, else None."""
        url = self.database.url
        if not url.startswith("sqlite"):
            return None
        _, _, path = url.partition(":///")
        if not path or path.startswith(":memory:"):
            return None
        return Path(path)


# Hey future me - lru_cache makes this a process-wide singleton. Tests that tweak
# the environment must call get_settings.cache_clear() or they see stale values.
@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
