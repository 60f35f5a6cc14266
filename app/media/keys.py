from __future__ import annotations

import base64
import secrets
from abc import ABC, abstractmethod
from typing import Optional

from app.core.logging import get_logger

__all__ = [
    "DEFAULT_EXTENSION",
    "RANDOM_NAME_BYTES",
    "KeyStrategy",
    "RandomKeyStrategy",
    "OwnerKeyStrategy",
    "media_type_to_ext",
    "random_asset_name",
]

DEFAULT_EXTENSION = ".bin"
RANDOM_NAME_BYTES = 32

logger = get_logger(component="asset_keys")


def media_type_to_ext(media_type: str) -> str:
    """Map ``type/subtype`` to ``.subtype``.

    The subtype is used verbatim; anything that is not exactly two non-empty
    parts falls back to ``.bin``.
    """
    parts = media_type.split("/")
    if len(parts) != 2 or not all(parts):
        return DEFAULT_EXTENSION
    return f".{parts[1]}"


def random_asset_name(media_type: str) -> str:
    """Return a URL-safe random filename carrying the media type's extension.

    A failing entropy source leaves no safe way to name objects, so it stops the
    process rather than failing one request.
    """
    try:
        raw = secrets.token_bytes(RANDOM_NAME_BYTES)
    except (OSError, NotImplementedError) as exc:
        logger.critical("entropy_source_unavailable", error=str(exc))
        raise SystemExit("entropy source unavailable") from exc
    token = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
    return f"{token}{media_type_to_ext(media_type)}"


class KeyStrategy(ABC):
    """Chooses the filename part of a storage key for one kind of asset."""

    @abstractmethod
    def filename(self, media_type: str, owner_id: object) -> str: ...

    def derive(self, media_type: str, owner_id: object, *, prefix: Optional[str] = None) -> str:
        name = self.filename(media_type, owner_id)
        if prefix:
            return f"{prefix.strip('/')}/{name}"
        return name


class RandomKeyStrategy(KeyStrategy):
    """A fresh random name per upload; the owner is ignored."""

    def filename(self, media_type: str, owner_id: object) -> str:
        return random_asset_name(media_type)


class OwnerKeyStrategy(KeyStrategy):
    """``<owner id><ext>``: re-uploads for the same owner overwrite the previous object."""

    def filename(self, media_type: str, owner_id: object) -> str:
        return f"{owner_id}{media_type_to_ext(media_type)}"
