"""
Configuration and settings for the MemeStream backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_ORIGINS = [
    "https://memestream-ten.vercel.app",
    "https://memestream.vercel.app",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    environment: str = Field(default="production")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible media storage (Tencent COS)
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    media_folder: str = Field(default="memestream")
    media_public_base_url: Optional[str] = Field(default=None)
    # COS image processing: automatic quality with format conversion.
    media_transform: str = Field(default="imageMogr2/format/webp/quality/85")

    # LLM / Gemini
    gemini_api_key: Optional[str] = Field(default=None)
    gemini_model: str = Field(default="gemini-2.0-flash")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # HTTP surface
    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS)
    )
    cors_origin_regex: str = Field(default=r"https://.*\.vercel\.app")
    cors_mode: Literal["enforce", "log-only"] = Field(default="log-only")
    max_body_bytes: int = Field(default=50 * 1024 * 1024)

    # Meme rules
    admin_user_ids: list[str] = Field(default_factory=lambda: ["admin"])
    report_dedupe: Literal["user_id", "substring"] = Field(default="user_id")
    default_page_size: int = Field(default=9, ge=1)

    @property
    def expose_error_details(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
