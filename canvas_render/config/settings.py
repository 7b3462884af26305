"""
Application Settings
===================

Main application settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="canvas-render", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Debug mode")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=5174, description="Server port")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Path = Field(default=Path("./logs"), description="Log file directory")

    # Rendering Configuration
    default_width: float = Field(default=750, gt=0, description="Default canvas width")
    default_height: float = Field(default=1334, gt=0, description="Default canvas height")
    device_scale_factor: float = Field(default=2.0, gt=0, description="Viewport pixel density")
    page_load_timeout_ms: int = Field(
        default=60000, gt=0, description="Document load timeout in milliseconds"
    )
    settle_delay_ms: int = Field(
        default=500, ge=0, description="Delay before capture so fonts finish rasterizing"
    )
    wait_for_fonts: bool = Field(
        default=True, description="Wait on document.fonts.ready before the settle delay"
    )

    # Browser Configuration
    playwright_headless: bool = Field(default=True, description="Run browser in headless mode")
    browser_launch_timeout_ms: int = Field(
        default=60000, gt=0, description="Browser launch timeout in milliseconds"
    )
    chrome_path: Optional[str] = Field(
        default=None,
        description="Explicit Chrome/Chromium executable, skips the platform probe",
        validation_alias=AliasChoices("chrome_path", "CANVAS_RENDER_CHROME_PATH", "CHROME_PATH"),
    )

    # Asset Cache Configuration
    image_cache_dir: Path = Field(
        default=Path(".image-cache"), description="Primary image cache directory"
    )
    image_cache_fallback_dirname: str = Field(
        default="canvas-render-image-cache",
        description="Cache directory name under the system temp dir when the primary is unwritable",
    )
    image_fetch_timeout: float = Field(
        default=30, gt=0, description="Image download timeout in seconds"
    )

    # Font Configuration
    fonts_dir: Path = Field(default=Path("fonts"), description="Local font directory")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="CANVAS_RENDER_",
        populate_by_name=True,
        extra="ignore",
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
