"""
Configuration and settings for the Sidey API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "sidey-development-secret-change-in-production"

MIB = 1024 * 1024


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Relational store (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible blob store
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    public_asset_base_url: str = Field(default="https://assets.sidey.app")
    signed_url_expires_in: int = Field(default=3600, ge=60, le=86400)

    # Tokens
    jwt_secret: str = Field(default=DEV_JWT_SECRET, min_length=32)
    token_ttl_seconds: int = Field(default=7 * 24 * 60 * 60, gt=0)

    # Per-file upload limits
    free_upload_limit_bytes: int = Field(default=100 * MIB)
    pro_upload_limit_bytes: int = Field(default=1024 * MIB)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, alias="SIDEY_USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
