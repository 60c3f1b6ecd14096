"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Sync engine settings loaded from environment variables.

    Attributes:
        app_name: Name of the application.
        debug: Echo SQL statements.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        database_url: Local database URL (async driver).
        api_base_url: Base URL of the remote REST API.
        request_timeout: Timeout in seconds for every remote HTTP call.
        supabase_url: Supabase project URL (empty = photo upload disabled).
        supabase_key: Supabase API key.
        storage_bucket: Object storage bucket for record photos.
        media_dir: Root directory for captured and downloaded images.
        connectivity_probe_url: URL probed for reachability (empty = api_base_url).
        connectivity_probe_interval: Seconds between reachability probes.
        sync_max_retries: Outbox retries for a failed record sync.
        sync_retry_backoff: Base delay in seconds between outbox retries.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "kalangka"
    debug: bool = False
    log_level: str = "INFO"

    # Local database
    database_url: str = "sqlite+aiosqlite:///kalangka.db"

    # Remote API
    api_base_url: str = "http://localhost:5000/api/v1"
    request_timeout: float = 10.0

    # Object storage
    supabase_url: str = ""
    supabase_key: str = ""
    storage_bucket: str = "kalangka"

    # Local media
    media_dir: Path = Path("media")

    # Connectivity
    connectivity_probe_url: str = ""
    connectivity_probe_interval: float = 15.0

    # Outbox retry policy
    sync_max_retries: int = 0
    sync_retry_backoff: float = 5.0

    @property
    def probe_url(self) -> str:
        """URL used by the connectivity probe."""
        return self.connectivity_probe_url or self.api_base_url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings.
    """
    return Settings()
