from __future__ import annotations

import mimetypes
import os
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .logging import get_logger

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class StorageError(Exception):
    """Raised when the backing store rejects or fails an operation."""


@dataclass(slots=True)
class StoredObject:
    data: bytes
    content_type: str


class Storage(ABC):
    @abstractmethod
    def put_object(self, key: str, body: BinaryIO, *, content_type: str) -> None: ...

    @abstractmethod
    def get_object(self, key: str) -> StoredObject: ...

    @abstractmethod
    def delete_object(self, key: str) -> None: ...

    @abstractmethod
    def exists(self, key: str) -> bool: ...


class LocalStorage(Storage):
    """Filesystem-backed object store; objects are served back through the /assets mount."""

    def __init__(self, base_path: Path):
        self.base_path = base_path.resolve()

    def _resolve(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        try:
            path.relative_to(self.base_path)
        except ValueError:
            raise FileNotFoundError(key)
        return path

    def put_object(self, key: str, body: BinaryIO, *, content_type: str) -> None:
        path = self._resolve(key)
        partial: Path | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # One private partial per write; concurrent puts to a key never share it.
            with tempfile.NamedTemporaryFile(
                dir=path.parent, prefix=f".{path.name}.", suffix=".part", delete=False
            ) as handle:
                partial = Path(handle.name)
                shutil.copyfileobj(body, handle)
            os.replace(partial, path)
        except OSError as exc:
            if partial is not None:
                partial.unlink(missing_ok=True)
            raise StorageError(f"local_put_failed:{key}") from exc

    def get_object(self, key: str) -> StoredObject:
        path = self._resolve(key)
        if not path.is_file():
            raise FileNotFoundError(key)
        content_type, _ = mimetypes.guess_type(path.name)
        return StoredObject(data=path.read_bytes(), content_type=content_type or DEFAULT_CONTENT_TYPE)

    def delete_object(self, key: str) -> None:
        try:
            self._resolve(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"local_delete_failed:{key}") from exc

    def exists(self, key: str) -> bool:
        try:
            return self._resolve(key).is_file()
        except FileNotFoundError:
            return False


class MemoryStorage(Storage):
    """Process-local store for development and tests.

    Contents are lost on restart and are not visible to other worker processes.
    """

    def __init__(self) -> None:
        self._objects: dict[str, StoredObject] = {}
        self._lock = threading.Lock()

    def put_object(self, key: str, body: BinaryIO, *, content_type: str) -> None:
        data = body.read()
        with self._lock:
            self._objects[key] = StoredObject(data=data, content_type=content_type)

    def get_object(self, key: str) -> StoredObject:
        with self._lock:
            stored = self._objects.get(key)
        if stored is None:
            raise FileNotFoundError(key)
        return stored

    def delete_object(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)


class S3Storage(Storage):
    """S3 (or S3-compatible) bucket accessed through boto3."""

    def __init__(self, settings: Settings, client: object | None = None) -> None:
        if not settings.s3_bucket:
            raise ValueError("s3 storage backend requires CLIPSTORE_S3_BUCKET")
        self.bucket = settings.s3_bucket
        self.logger = get_logger(component="s3_storage", bucket=self.bucket)
        self.client = client or boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=settings.s3_region,
            config=Config(signature_version="s3v4"),
        )

    def put_object(self, key: str, body: BinaryIO, *, content_type: str) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            self.logger.error("s3_put_failed", key=key, error=str(exc))
            raise StorageError(f"s3_put_failed:{key}") from exc

    def get_object(self, key: str) -> StoredObject:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                raise FileNotFoundError(key) from exc
            raise StorageError(f"s3_get_failed:{key}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"s3_get_failed:{key}") from exc
        return StoredObject(
            data=response["Body"].read(),
            content_type=response.get("ContentType") or DEFAULT_CONTENT_TYPE,
        )

    def delete_object(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"s3_delete_failed:{key}") from exc

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404", "NotFound"}:
                return False
            raise StorageError(f"s3_head_failed:{key}") from exc
        return True


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(base_path=Path(settings.assets_root))
    if settings.storage_backend == "memory":
        return MemoryStorage()
    if settings.storage_backend == "s3":
        return S3Storage(settings)
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "StorageError",
    "StoredObject",
    "LocalStorage",
    "MemoryStorage",
    "S3Storage",
    "get_storage",
]
