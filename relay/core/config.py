"""
Configuration management for the R2 Relay Service.
Loads environment variables using Pydantic Settings.
"""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from relay.s3.config import DEFAULT_QUEUE_SIZE, MIN_PART_SIZE

MIN_PART_SIZE_MB = MIN_PART_SIZE // (1024 * 1024)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Cloudflare R2 credentials
    R2_ACCOUNT_ID: str
    R2_ACCESS_KEY_ID: str
    R2_SECRET_ACCESS_KEY: str
    R2_BUCKET_NAME: str

    # Public base URL of the bucket (e.g., https://media.yourdomain.com)
    R2_PUBLIC_DOMAIN: str

    # Shared secret for the control panel and the upload API
    ADMIN_PASSWORD: str

    # Any S3-compatible endpoint (e.g., http://localhost:9000 for MinIO)
    S3_ENDPOINT_URL: Optional[str] = None
    S3_REGION: str = "auto"    # R2 ignores the region but SigV4 needs one

    # Multipart upload tuning
    UPLOAD_PART_SIZE_MB: int = 50
    UPLOAD_QUEUE_SIZE: int = DEFAULT_QUEUE_SIZE    # Parts in flight at once

    # Remote fetch
    FETCH_TIMEOUT_SECONDS: float = 60.0

    # Progress messages waiting for the client before the upload pauses
    MAX_PENDING_EVENTS: int = 64

    # Application
    LOG_LEVEL: str = "INFO"

    @field_validator("R2_PUBLIC_DOMAIN")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Public links are built as '{domain}/{key}'."""
        return value.rstrip("/")

    @field_validator("UPLOAD_PART_SIZE_MB")
    @classmethod
    def check_part_size(cls, value: int) -> int:
        if value < MIN_PART_SIZE_MB:
            raise ValueError(f"UPLOAD_PART_SIZE_MB must be at least {MIN_PART_SIZE_MB}")
        return value

    @field_validator("UPLOAD_QUEUE_SIZE", "MAX_PENDING_EVENTS")
    @classmethod
    def check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @property
    def endpoint_url(self) -> str:
        """S3 endpoint, defaulting to the account's R2 endpoint."""
        if self.S3_ENDPOINT_URL:
            return self.S3_ENDPOINT_URL
        return f"https://{self.R2_ACCOUNT_ID}.r2.cloudflarestorage.com"

    @property
    def part_size_bytes(self) -> int:
        return self.UPLOAD_PART_SIZE_MB * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
