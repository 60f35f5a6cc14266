from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import Protocol

from app.core.errors import TranscodeFailed
from app.core.logging import get_logger

__all__ = ["PROCESSED_SUFFIX", "Remuxer", "FFmpegRemuxer", "processed_path_for", "ensure_non_empty"]

PROCESSED_SUFFIX = ".processing"


class Remuxer(Protocol):
    async def fast_start(self, input_path: Path) -> Path: ...


def processed_path_for(input_path: Path) -> Path:
    return input_path.with_name(f"{input_path.name}{PROCESSED_SUFFIX}")


def ensure_non_empty(path: Path) -> None:
    """Reject a missing or zero-byte output even when the tool reported success."""
    try:
        size = path.stat().st_size
    except FileNotFoundError as exc:
        raise TranscodeFailed(f"processed file missing: {path}") from exc
    if size == 0:
        raise TranscodeFailed("processed file is empty")


class FFmpegRemuxer:
    """Stream-copies a file into an MP4 with the moov atom up front."""

    def __init__(self, binary: str = "ffmpeg") -> None:
        self.binary = binary
        self.logger = get_logger(component="ffmpeg")

    def command(self, input_path: Path, output_path: Path) -> list[str]:
        return [
            self.binary,
            "-nostdin",
            "-v",
            "error",
            "-i",
            str(input_path),
            "-c",
            "copy",
            "-movflags",
            "faststart",
            "-f",
            "mp4",
            "-y",
            str(output_path),
        ]

    async def fast_start(self, input_path: Path) -> Path:
        output_path = processed_path_for(input_path)
        command = self.command(input_path, output_path)
        self.logger.debug("ffmpeg_run", command=command)
        try:
            await self._run(command)
            ensure_non_empty(output_path)
        except BaseException:
            # Partial output from a failed or cancelled run must never be published.
            output_path.unlink(missing_ok=True)
            raise
        self.logger.info("fast_start_written", output=str(output_path), size_bytes=output_path.stat().st_size)
        return output_path

    async def _run(self, command: list[str]) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise TranscodeFailed(f"ffmpeg binary not found: {self.binary}") from exc

        try:
            _, stderr = await proc.communicate()
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            self.logger.warning("ffmpeg_cancelled", pid=proc.pid)
            raise

        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise TranscodeFailed(f"ffmpeg exited with {proc.returncode}: {message}")
