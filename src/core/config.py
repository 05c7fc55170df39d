"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

from pydantic_settings import BaseSettings
from typing import Optional


DEFAULT_STYLIZATION_PROMPT = (
    "Generate a child version of this face with big eyes, soft round cheeks, "
    "and a warm smile. Make it look like an adorable, lovable child, cute, and "
    "visually appealing. Ignore age in the original image and always produce a "
    "young child look (around 8 years old). Make the face look hyper-realistic "
    "and very cute."
)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "Child Face Pipeline"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD
    DEBUG: bool = True

    # ==========================================================================
    # Inference Provider (Replicate)
    # ==========================================================================
    REPLICATE_API_URL: str = "https://api.replicate.com/v1"
    REPLICATE_API_TOKEN: Optional[str] = None
    PROVIDER_HTTP_TIMEOUT_SECONDS: float = 60.0

    # ==========================================================================
    # Pipeline Stages
    # ==========================================================================
    # Model identity: version hash, "owner/model:version" or "owner/model"
    SYNTHESIS_MODEL: str = "ff468394511c14964291096709b7295158bcb595fe3e8a830f3c7a5ae54c0177"
    RESTORATION_MODEL: str = "cc4956dd26fa5a7185d5660cc9100fab1b8070a1d1654a8bb5eb6d443b020bb2"
    STYLIZATION_MODEL: str = "black-forest-labs/flux-kontext-pro"

    POLL_INTERVAL_SECONDS: float = 4.0
    SYNTHESIS_MAX_POLL_ATTEMPTS: int = 75  # ~5 minutes
    RESTORATION_MAX_POLL_ATTEMPTS: int = 60
    STYLIZATION_MAX_POLL_ATTEMPTS: int = 60

    # CodeFormer
    RESTORATION_UPSCALE: int = 2
    RESTORATION_FIDELITY: float = 0.5

    # FLUX Kontext
    STYLIZATION_PROMPT: str = DEFAULT_STYLIZATION_PROMPT
    STYLIZATION_SEED: int = 42

    # ==========================================================================
    # Storage Settings (The Bridge Pattern)
    # ==========================================================================
    STORAGE_BACKEND: str = "local"  # local, cloudinary
    LOCAL_STORAGE_PATH: str = "./data/storage"
    # Local uploads must be reachable by the provider, so this has to be public
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    CLOUDINARY_CLOUD_NAME: Optional[str] = None
    CLOUDINARY_API_KEY: Optional[str] = None
    CLOUDINARY_API_SECRET: Optional[str] = None

    MAX_IMAGE_SIZE_BYTES: int = 10485760  # 10MB

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development

    # ==========================================================================
    # CORS Settings
    # ==========================================================================
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost:8000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        frozen = True


# Global settings instance
settings = Settings()
