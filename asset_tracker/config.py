"""Application configuration using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Calculate project root: config.py is in asset_tracker/, so go up one level
_CONFIG_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _CONFIG_DIR.parent

MEGABYTE = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / "asset_tracker" / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="Asset Tracker", description="Application name")
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Root logging level", alias="LOG_LEVEL")
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins allowed by the CORS middleware",
        alias="CORS_ORIGINS",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./assets.db",
        description="SQLAlchemy database connection URL",
        alias="DATABASE_URL",
    )

    # Asset identity
    asset_id_prefix: str = Field(
        default="ZC",
        description="Prefix used for system-generated asset codes",
        alias="ASSET_ID_PREFIX",
    )

    # Blob storage
    blob_backend: Literal["local", "oss"] = Field(
        default="local",
        description="Object storage backend used for asset photos",
        alias="BLOB_BACKEND",
    )
    storage_path: str | None = Field(
        default=None,
        description="Root directory of the local blob backend",
        alias="STORAGE_PATH",
    )
    blob_public_base_url: str = Field(
        default="/uploads",
        description="URL prefix under which locally stored blobs are served",
        alias="BLOB_PUBLIC_BASE_URL",
    )
    blob_key_prefix: str = Field(default="assets", description="Namespace for uploaded photo keys", alias="BLOB_KEY_PREFIX")
    blob_upload_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single blob store request",
        alias="BLOB_UPLOAD_TIMEOUT_SECONDS",
    )
    oss_region: str = Field(default="oss-cn-hangzhou", description="OSS region", alias="OSS_REGION")
    oss_access_key_id: str | None = Field(default=None, description="OSS access key id", alias="OSS_ACCESS_KEY_ID")
    oss_access_key_secret: str | None = Field(
        default=None,
        description="OSS access key secret",
        alias="OSS_ACCESS_KEY_SECRET",
    )
    oss_bucket: str | None = Field(default=None, description="OSS bucket name", alias="OSS_BUCKET")
    oss_endpoint: str | None = Field(
        default=None,
        description="Override for the OSS bucket endpoint (defaults to <bucket>.<region>.aliyuncs.com)",
        alias="OSS_ENDPOINT",
    )

    # Image pipeline
    max_images_per_asset: int = Field(default=5, ge=1, description="Maximum photos per asset", alias="MAX_IMAGES_PER_ASSET")
    single_image_max_bytes: int = Field(
        default=5 * MEGABYTE,
        gt=0,
        description="Size ceiling of the single-image upload path",
        alias="SINGLE_IMAGE_MAX_BYTES",
    )
    multi_image_max_bytes: int = Field(
        default=10 * MEGABYTE,
        gt=0,
        description="Size ceiling of the multi-image upload path",
        alias="MULTI_IMAGE_MAX_BYTES",
    )
    image_max_dimension: int = Field(default=1920, gt=0, description="Longest side after compression", alias="IMAGE_MAX_DIMENSION")
    image_target_bytes: int = Field(
        default=1 * MEGABYTE,
        gt=0,
        description="Best-effort size target of a compressed photo",
        alias="IMAGE_TARGET_BYTES",
    )
    image_quality: float = Field(default=0.8, gt=0, le=1, description="Initial JPEG quality factor", alias="IMAGE_QUALITY")

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v: str | None) -> str:
        """Validate and normalize database URL."""
        if v is None or v == "":
            raise ValueError("DATABASE_URL is required")
        return v.strip()

    @field_validator("app_env", mode="before")
    @classmethod
    def normalize_app_env(cls, v: str) -> str:
        """Normalize app environment to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper().strip()
        return v

    @field_validator("asset_id_prefix", mode="before")
    @classmethod
    def validate_asset_id_prefix(cls, v: str) -> str:
        """Asset code prefixes are printed on labels, keep them plain alphanumerics."""
        if not isinstance(v, str) or not v.strip().isalnum():
            raise ValueError("ASSET_ID_PREFIX must be a non-empty alphanumeric string")
        return v.strip().upper()

    @property
    def resolved_storage_path(self) -> Path:
        """Directory used by the local blob backend."""
        if self.storage_path:
            return Path(self.storage_path)
        return _PROJECT_ROOT / "uploads"


def get_settings() -> Settings:
    """Get application settings instance.

    Returns:
        Settings: Application settings instance

    Example:
        ```python
        from asset_tracker.config import get_settings

        settings = get_settings()
        print(settings.database_url)
        ```
    """
    return Settings()

