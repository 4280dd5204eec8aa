"""Configuration settings for imagewright.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REPORT_LOCATION = "imagewright.report.json"
DEFAULT_VERSION_CHECK_URL = (
    "https://api.github.com/repos/imagewright/imagewright/releases/latest"
)


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the IMAGEWRIGHT_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="IMAGEWRIGHT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Output
    output_format: str = Field(
        default="text",
        description="Event stream format (text, json, subscription)",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    report_location: str = Field(
        default=DEFAULT_REPORT_LOCATION,
        description="Command report file path ('off' disables reports)",
    )

    # Version check
    check_version: bool = Field(
        default=True,
        description="Check for a newer release in the background",
    )
    version_check_url: str = Field(
        default=DEFAULT_VERSION_CHECK_URL,
        description="Release metadata endpoint used by the version check",
    )
    version_check_timeout: int = Field(
        default=5,
        ge=1,
        description="Timeout for the version check (seconds)",
    )

    # Registry
    registry_timeout: int = Field(
        default=300,
        ge=1,
        description="Timeout for registry requests (seconds)",
    )

    # Environment detection overrides (None = auto-detect)
    in_container: bool | None = Field(
        default=None,
        description="Force in-container mode",
    )
    is_ds_image: bool | None = Field(
        default=None,
        description="Force distribution-image mode",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "DEFAULT_REPORT_LOCATION",
    "DEFAULT_VERSION_CHECK_URL",
    "Settings",
    "get_settings",
    "print_settings_json",
]
