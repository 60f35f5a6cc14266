from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="CLIPSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="HMAC secret used to verify access tokens.")
    admin_api_key: Optional[str] = Field(default=None, description="Key expected in 'Authorization: ApiKey <key>'.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the clipstore API."""

    model_config = SettingsConfigDict(
        env_prefix="CLIPSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "clipstore API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./clipstore.db",
        description="SQLAlchemy compatible DSN.",
    )
    auto_create_schema: bool = Field(
        default=False,
        description="Create missing tables at startup (development only; use Alembic elsewhere).",
    )

    storage_backend: Literal["local", "memory", "s3"] = Field(default="local", description="Active object store.")
    assets_root: Path = Field(default_factory=lambda: Path("assets"), description="Root for the local object store.")

    public_url_strategy: Literal["local", "s3", "cdn"] = Field(
        default="local",
        description="How public asset URLs are built from storage keys.",
    )
    public_base_url: str = Field(
        default="http://localhost:8091",
        description="Base URL the local /assets mount is reachable under.",
    )

    s3_bucket: Optional[str] = None
    s3_region: str = Field(default="us-east-1")
    s3_endpoint_url: Optional[str] = Field(default=None, description="Override for S3-compatible stores (e.g. MinIO).")
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    cdn_distribution: Optional[str] = Field(default=None, description="CDN host fronting the bucket.")

    max_video_upload_bytes: int = Field(default=1 << 30, description="Ceiling for video upload bodies.")
    max_thumbnail_upload_bytes: int = Field(default=10 << 20, description="Ceiling for thumbnail upload bodies.")
    multipart_overhead_bytes: int = Field(
        default=64 * 1024,
        description="Allowance for boundaries and part headers on top of the file ceiling when bounding the raw body.",
    )
    video_media_type: str = Field(default="video/mp4", description="The only accepted video content type.")
    temp_dir: Optional[Path] = Field(default=None, description="Scratch directory for staged uploads.")

    ffprobe_binary: str = Field(default="ffprobe")
    ffmpeg_binary: str = Field(default="ffmpeg")

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: str = Field(default="clipstore-access", description="Required 'iss' claim on access tokens.")
    access_token_ttl_seconds: int = Field(default=3600, description="Lifetime of development tokens.")

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    def upload_ceiling(self, variant: Literal["video", "thumbnail"]) -> int:
        if variant == "video":
            return self.max_video_upload_bytes
        return self.max_thumbnail_upload_bytes

    def body_limit(self, variant: Literal["video", "thumbnail"]) -> int:
        """Largest acceptable multipart request body for ``variant``."""
        return self.upload_ceiling(variant) + self.multipart_overhead_bytes


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "CLIPSTORE_ENV": "CLIPSTORE_ENVIRONMENT",
        "CLIPSTORE_DB_URL": "CLIPSTORE_DATABASE_URL",
        "CLIPSTORE_STORAGE": "CLIPSTORE_STORAGE_BACKEND",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    secrets = Secrets.from_settings(settings)

    if settings.environment_lower == "production" and secrets.jwt_secret == "change-me":
        raise ValueError("Production environment must have a non-default JWT secret.")

    settings.secrets = secrets
    return settings


__all__ = ["Secrets", "Settings", "get_settings"]
