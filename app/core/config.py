"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Wedding Roster"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"  # Bind to all interfaces for external access
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./wedding_roster.db"

    # Roster cache
    roster_stale_seconds: int = 30  # Cached projections older than this are re-fetched
    roster_cache_ttl_minutes: int = 5  # Unused projections are evicted after this
    cache_sweep_interval_minutes: int = 1


settings = Settings()
