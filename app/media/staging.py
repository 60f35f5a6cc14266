from __future__ import annotations

import tempfile
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, AsyncIterator, Iterator, Optional, Protocol

from app.core.errors import StagingFailed, UploadTooLarge
from app.core.logging import get_logger

__all__ = ["AsyncReader", "StagedFile", "staged_upload", "scratch_file", "CHUNK_SIZE", "STAGING_PREFIX"]

CHUNK_SIZE = 1024 * 1024
STAGING_PREFIX = "clipstore-upload-"

logger = get_logger(component="staging")


class AsyncReader(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


@dataclass(slots=True)
class StagedFile:
    path: Path
    handle: IO[bytes]
    size_bytes: int

    def rewind(self) -> IO[bytes]:
        self.handle.seek(0)
        return self.handle


@asynccontextmanager
async def staged_upload(
    reader: AsyncReader,
    *,
    max_bytes: Optional[int],
    suffix: str = "",
    directory: Optional[Path] = None,
) -> AsyncIterator[StagedFile]:
    """Copy ``reader`` into a private temporary file and yield it rewound to byte zero.

    The file is closed and removed when the block exits, however it exits.
    """
    try:
        handle = tempfile.NamedTemporaryFile(
            prefix=STAGING_PREFIX,
            suffix=suffix,
            dir=str(directory) if directory else None,
            delete=False,
        )
    except OSError as exc:
        raise StagingFailed("could_not_create_temp_file") from exc

    path = Path(handle.name)
    logger.debug("staging_file_created", path=str(path))
    try:
        written = 0
        try:
            while chunk := await reader.read(CHUNK_SIZE):
                written += len(chunk)
                if max_bytes is not None and written > max_bytes:
                    raise UploadTooLarge(f"upload exceeded {max_bytes} bytes")
                handle.write(chunk)
            handle.flush()
            handle.seek(0)
        except OSError as exc:
            raise StagingFailed("could_not_write_temp_file") from exc

        yield StagedFile(path=path, handle=handle, size_bytes=written)
    finally:
        handle.close()
        path.unlink(missing_ok=True)
        logger.debug("staging_file_removed", path=str(path))


@contextmanager
def scratch_file(path: Path) -> Iterator[Path]:
    """Remove a derived artefact (e.g. the remuxed copy) when the block exits."""
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
