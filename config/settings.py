"""Configuration Management with Pydantic Settings."""

import logging
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application Settings.

    Loads configuration from environment variables and ``.env``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Remote store (PostgREST-compatible REST endpoint)
    remote_store_url: Optional[str] = None
    remote_store_key: Optional[str] = None
    remote_timeout_seconds: float = 10.0
    remote_poll_interval_seconds: float = 15.0

    # Local fallback store
    local_database_url: str = "sqlite+aiosqlite:///order_board.db"

    # Dashboard
    agent_stats_enabled: bool = True
    display_timezone: str = "UTC"

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    @field_validator("remote_store_url", "remote_store_key", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    def remote_configured(self) -> bool:
        return bool(self.remote_store_url and self.remote_store_key)


_settings: Optional[Settings] = None


def get_settings(*, force_reload: bool = False, env_file: Optional[str] = None) -> Settings:
    """
    Get application settings, cached for the process lifetime.

    Args:
        force_reload: Re-read environment and ``.env``
        env_file: Alternative env file to read

    Returns:
        Settings instance
    """
    global _settings
    if force_reload or _settings is None:
        if env_file:
            _settings = Settings(_env_file=env_file)
        else:
            _settings = Settings()
        if not _settings.remote_configured():
            logger.info("[Settings] Remote store not configured, using local store only")
    return _settings
