"""Runtime configuration: env-driven, shared by the service and the client.

Centralized settings using pydantic-settings for environment variable
support. Reads from a .env file and MANIFESTSYNC_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Service and client configuration with environment variable overrides.

    All settings can be overridden via MANIFESTSYNC_* environment variables
    or a .env file in the working directory.

    Examples
    --------
    Override via environment::

        export MANIFESTSYNC_ENVIRONMENT=production
        export MANIFESTSYNC_LOG_LEVEL=DEBUG
        export MANIFESTSYNC_DATABASE_PATH=/data/revisions.db

    Or via .env file::

        MANIFESTSYNC_REMOTE_URL=https://manifest.example.org
        MANIFESTSYNC_BUDGET_SECONDS=20
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MANIFESTSYNC_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Service storage
    database_path: Path = Path(".manifestsync/revisions.db")
    store_path: Path = Path(".manifestsync/objects")
    sqlite_busy_timeout_seconds: float = 30.0

    # Service behaviour
    host: str = "127.0.0.1"
    port: int = 8720
    max_manifest_bytes: int = 1024 * 1024
    publish_max_attempts: int = 3
    latest_cache_ttl_seconds: float = 2.0

    # Consumer side
    remote_url: str = "http://127.0.0.1:8720"
    manifest_path: Path = Path("AGENTS.md")
    request_timeout_seconds: float = 5.0
    max_attempts: int = 5
    budget_seconds: float = 10.0
    backoff_base_seconds: float = 0.25
    backoff_max_seconds: float = 4.0
    lock_timeout_seconds: float = 5.0
    lock_stale_seconds: float = 120.0

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton, import as `from manifestsync.config import config`
config = SyncSettings()
