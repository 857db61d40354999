"""Configuration loading from the environment."""

from datetime import timedelta
from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server info
    server_name: str = "mcp-server"
    server_version: str = "0.0.1"

    # Host and port
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Pagination (unset means every item on a single page)
    tools_page_size: int | None = None
    prompts_page_size: int | None = None
    resources_page_size: int | None = None
    resource_templates_page_size: int | None = None

    # Timeouts
    root_list_timeout: timedelta = timedelta(seconds=5)
    subscription_timeout: timedelta = timedelta(minutes=2)
    subscription_interval: timedelta = timedelta(seconds=5)

    # Capability providers: modules exposing register(registry)
    providers: list[str] = []

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator(
        "tools_page_size",
        "prompts_page_size",
        "resources_page_size",
        "resource_templates_page_size",
    )
    @classmethod
    def _positive_page_size(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("Page size must be greater than zero")
        return value

    @field_validator("root_list_timeout", "subscription_timeout", "subscription_interval", mode="before")
    @classmethod
    def _seconds(cls, value: Any) -> Any:
        """Bare numbers are seconds; ISO-8601 durations pass through."""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return timedelta(seconds=value)
        if isinstance(value, str):
            try:
                return timedelta(seconds=float(value))
            except (ValueError, OverflowError):
                return value
        return value

    @field_validator("root_list_timeout", "subscription_timeout", "subscription_interval")
    @classmethod
    def _positive_duration(cls, value: timedelta) -> timedelta:
        if value.total_seconds() <= 0:
            raise ValueError("Duration must be greater than zero")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
