"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Console settings loaded from ``WATERDESK_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WATERDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend
    api_base_url: str = "http://localhost:5000/api"
    api_timeout: float = 10.0

    # List screens
    page_size: int = Field(default=12, ge=1)

    # Connections live in browser-style local storage unless pointed at the API
    connections_backend: Literal["local", "api"] = "local"
    local_storage_path: str = ".waterdesk/local_storage.json"

    # Mutations
    bulk_delete_workers: int = Field(default=4, ge=1)
    audit_mutations: bool = True
    audit_user: str = "admin"

    # Customer portal mock data; None draws fresh numbers per session
    usage_seed: Optional[int] = None

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
