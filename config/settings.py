"""Configuration management using pydantic-settings."""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Inventory API configuration
    api_base_url: str = "http://localhost:8080"
    api_token: Optional[str] = None
    request_timeout_seconds: float = 30.0

    # Cache settings
    cache_ttl_seconds: float = 60.0
    coalesce_timeout_seconds: float = 30.0

    # Pagination
    page_size: int = 20

    # Debounce window for tab/scope switching
    debounce_delay_ms: int = 300

    # Retry budget for one logical operation
    max_retries: int = 2

    # Sync event log (JSONL)
    sync_logging: bool = False
    sync_log_directory: Path = Path("./logs")

    @property
    def debounce_delay_seconds(self) -> float:
        return self.debounce_delay_ms / 1000.0


settings = Settings()
