"""
Configuration management for MediMind.

Uses Pydantic Settings for type-safe environment variable handling.
All configuration is loaded from environment variables or .env file.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "MediMind"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # ==========================================================================
    # Server
    # ==========================================================================
    host: str = "0.0.0.0"
    port: int = 8000

    # ==========================================================================
    # Model Gateway (server side only)
    # ==========================================================================
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("gemini_api_key", "api_key")
    )
    default_chat_model: str = "gemini-2.5-flash"
    verification_model: str = "gemini-3-pro-preview"
    speech_model: str = "gemini-2.5-flash-preview-tts"
    speech_sample_rate: int = 24000

    # ==========================================================================
    # Proxy Client (assistant side)
    # ==========================================================================
    proxy_url: str = "http://localhost:8000/api/gemini-proxy"
    proxy_timeout_seconds: float = 120.0

    # ==========================================================================
    # Rate Limiting
    # ==========================================================================
    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 30

    # ==========================================================================
    # File Upload
    # ==========================================================================
    max_file_size_mb: int = 10
    allowed_pdf_extensions: str = ".pdf"
    allowed_image_extensions: str = ".png,.jpg,.jpeg,.webp"
    allowed_text_extensions: str = ".txt"

    # ==========================================================================
    # Local State
    # ==========================================================================
    storage_path: str = "data/local_storage.json"
    temp_dir: str = "temp"

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @property
    def max_file_size_bytes(self) -> int:
        """Maximum file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def pdf_extensions(self) -> list[str]:
        """List of allowed PDF extensions."""
        return [ext.strip() for ext in self.allowed_pdf_extensions.split(",")]

    @property
    def image_extensions(self) -> list[str]:
        """List of allowed image extensions."""
        return [ext.strip() for ext in self.allowed_image_extensions.split(",")]

    @property
    def text_extensions(self) -> list[str]:
        """List of allowed text extensions."""
        return [ext.strip() for ext in self.allowed_text_extensions.split(",")]

    @property
    def storage_file(self) -> Path:
        """Path to the local storage file (parent directory is created)."""
        path = Path(self.storage_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def temp_path(self) -> Path:
        """Path to temporary directory."""
        path = Path(self.temp_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience access
settings = get_settings()
