"""
Application configuration with environment-based settings.

Configuration is centralized here to allow easy swapping between
development, staging, and production environments. Calibration
constants live here too: they are product decisions that differ
between deployments, not fixed engineering values.
"""

import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CAMTRAP_ID_",
        extra="ignore",
    )

    # API Configuration
    app_name: str = "Camera Trap Species Identification API"
    app_version: str = "0.1.0"
    debug: bool = False
    api_prefix: str = ""

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Vision-language model
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    model_timeout_seconds: float = Field(default=60.0, gt=0)

    # Retry policy for the model gateway
    max_retries: int = Field(default=2, ge=0)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)

    # Image input limits
    max_image_size_mb: float = 10.0

    # Confidence calibration
    infrared_penalty: float = Field(default=0.15, ge=0.0, le=1.0)
    flash_eyeshine_cap: float = Field(default=0.55, ge=0.0, le=1.0)
    obscured_face_cap: float = Field(default=0.60, ge=0.0, le=1.0)
    review_threshold: float = Field(default=0.65, ge=0.0, le=1.0)
    ambiguity_margin: float = Field(default=0.15, ge=0.0, le=1.0)

    # Logging
    log_level: str = "INFO"

    def resolved_api_key(self) -> Optional[str]:
        """API key from settings, falling back to the SDK's usual env vars."""
        return (
            self.gemini_api_key
            or os.getenv("GEMINI_API_KEY")
            or os.getenv("GOOGLE_API_KEY")
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
