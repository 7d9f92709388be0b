"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Directory Sync"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./directory_sync.db"

    # Upstream directory API
    directory_api_base_url: str = "https://api.lu.ma/public/v1"
    directory_api_key: str = ""
    directory_api_key_header: str = "x-luma-api-key"
    request_timeout_seconds: float = 30.0

    # Fetch / write tuning
    page_size: int = 50
    batch_size: int = 50
    fetch_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    page_delay_seconds: float = 0.5  # Pause between pages, keeps us under rate limits
    attendance_max_pages: int = 10
    attendance_recent_hours: int = 48

    # Sync schedule
    sync_interval_minutes: int = 60
    attendance_sync_interval_minutes: int = 360
    initial_sync_delay_seconds: float = 5.0


settings = Settings()
