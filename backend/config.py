# config.py
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide configuration, read once at startup from the environment and .env."""

    bucket_name: str = ""
    aws_region: str = "us-east-1"
    aws_access_key: Optional[str] = None
    aws_secret_key: Optional[str] = None
    endpoint_url: Optional[str] = Field(default=None, validation_alias="S3_ENDPOINT_URL")

    max_chunk_size: int = 10 * 1024 * 1024  # 10MB default
    content_type: str = "video/mp4"
    key_prefix: str = ""
    stream_idle_timeout: Optional[float] = None
    download_url_expires: int = 4 * 60 * 60

    cleanup_enabled: bool = True
    cleanup_interval_seconds: int = 6 * 60 * 60
    stale_upload_max_age_hours: int = 7 * 24

    app_env: str = "DEV"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        validate_default=True,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    @field_validator("bucket_name")
    @classmethod
    def _bucket_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("BUCKET_NAME is not set, hint: check .env file")
        return value.strip()

    @field_validator("max_chunk_size", "download_url_expires", "cleanup_interval_seconds")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("stream_idle_timeout")
    @classmethod
    def _positive_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("STREAM_IDLE_TIMEOUT must be greater than zero")
        return value

    @property
    def max_message_size(self) -> int:
        # Frames above this are refused by the server itself and surface as a
        # stream read failure, not as ChunkTooLarge.
        return max(self.max_chunk_size * 4, 64 * 1024 * 1024)
