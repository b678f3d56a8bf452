"""Configuration settings for the clinic reports engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Clinic data API
    clinic_api_url: str = Field(
        default="http://localhost:8000", validation_alias="CLINIC_API_URL"
    )
    clinic_api_token: SecretStr = Field(..., validation_alias="CLINIC_API_TOKEN")
    clinic_api_timeout: float = Field(default=30.0, validation_alias="CLINIC_API_TIMEOUT")
    clinic_api_max_retries: int = Field(
        default=3, validation_alias="CLINIC_API_MAX_RETRIES"
    )

    # Monthly refresh scheduler
    refresh_max_retries: int = Field(default=3, validation_alias="REFRESH_MAX_RETRIES")
    refresh_retry_delay_seconds: float = Field(
        default=2.0, validation_alias="REFRESH_RETRY_DELAY_SECONDS"
    )
    refresh_poll_interval_seconds: float = Field(
        default=3600.0, validation_alias="REFRESH_POLL_INTERVAL_SECONDS"
    )
    refresh_state_path: str = Field(
        default=".clinic_reports_state.json", validation_alias="REFRESH_STATE_PATH"
    )

    # WebSocket notifications
    ws_host: str = Field(default="0.0.0.0", validation_alias="WS_HOST")
    ws_port: int = Field(default=8765, validation_alias="WS_PORT")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


class ProfileSettings(BaseSettings):
    """Clinic profile location only; usable without API credentials."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    clinic_profile_path: str | None = Field(
        default=None, validation_alias="CLINIC_PROFILE_PATH"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()


@lru_cache
def get_profile_settings() -> ProfileSettings:
    return ProfileSettings()
