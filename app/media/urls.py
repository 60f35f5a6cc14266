from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from app.core.config import Settings

__all__ = ["ASSETS_MOUNT", "PublicURLBuilder"]

ASSETS_MOUNT = "/assets"


@dataclass(frozen=True, slots=True)
class PublicURLBuilder:
    """Turns a storage key into the URL clients fetch it from."""

    strategy: Literal["local", "s3", "cdn"]
    base: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "PublicURLBuilder":
        strategy = settings.public_url_strategy
        if strategy == "local":
            return cls(strategy, f"{settings.public_base_url.rstrip('/')}{ASSETS_MOUNT}")
        if strategy == "s3":
            if not settings.s3_bucket:
                raise ValueError("s3 public URLs require CLIPSTORE_S3_BUCKET")
            return cls(strategy, f"https://{settings.s3_bucket}.s3.{settings.s3_region}.amazonaws.com")
        if strategy == "cdn":
            if not settings.cdn_distribution:
                raise ValueError("cdn public URLs require CLIPSTORE_CDN_DISTRIBUTION")
            return cls(strategy, f"https://{settings.cdn_distribution.strip('/')}")
        raise ValueError(f"Unsupported public URL strategy: {strategy}")

    def url_for(self, key: str) -> str:
        return f"{self.base}/{key.lstrip('/')}"
