"""
Worker Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.

Only the composition root (CLI / Celery task) reads these settings;
pipeline components receive the values they need as arguments.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Worker settings with environment variable support."""

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "Image Derivative Worker"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD

    # Scratch directory for the downloaded source and written derivatives
    WORK_DIR: str = "./data/work"

    # ==========================================================================
    # Storage Settings (The Bridge Pattern)
    # ==========================================================================
    STORAGE_BACKEND: str = "local"  # local, azure

    # Local storage path (development)
    LOCAL_STORAGE_PATH: str = "./data/storage"
    PUBLIC_BASE_URL: str = "/static/storage"

    # Azure Blob Storage (production)
    AZURE_STORAGE_CONNECTION_STRING: Optional[str] = None
    AZURE_CONTAINER_NAME: str = "imagery"

    # ==========================================================================
    # Database (asset version records, optional)
    # ==========================================================================
    DATABASE_URL: Optional[str] = None

    # ==========================================================================
    # Pipeline Settings
    # ==========================================================================
    TILE_WORKERS: int = 4
    DOWNLOAD_TIMEOUT_SECONDS: float = 60.0

    # ==========================================================================
    # Celery Settings
    # ==========================================================================
    REDIS_URL: str = "redis://localhost:6379/1"

    # ==========================================================================
    # Metrics Settings
    # ==========================================================================
    PUSHGATEWAY_URL: Optional[str] = None

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
