from __future__ import annotations

import asyncio
import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Literal, Protocol

from app.core.errors import NoStreamsFound, ParseFailed, ProbeFailed
from app.core.logging import get_logger

__all__ = [
    "Orientation",
    "MediaDescriptor",
    "Prober",
    "FFprobeProber",
    "classify_orientation",
    "parse_stream_geometry",
]

Orientation = Literal["landscape", "portrait", "other"]


@dataclass(slots=True, frozen=True)
class MediaDescriptor:
    """Geometry of the first stream ffprobe reports for a file."""

    width: int
    height: int
    orientation: Orientation


def classify_orientation(width: int, height: int) -> Orientation:
    """Classify a frame size as 16:9, 9:16 or anything else.

    Only exact matches under integer floor division count, so sizes such as
    854x480 (whose height is not a multiple of 9) land in ``other``.

    Args:
        width: Frame width in pixels.
        height: Frame height in pixels.

    Returns:
        The orientation tag.
    """
    if width <= 0 or height <= 0:
        return "other"
    if width == 16 * height // 9:
        return "landscape"
    if height == 16 * width // 9:
        return "portrait"
    return "other"


def parse_stream_geometry(raw: Any) -> MediaDescriptor:
    """Extract the first stream's width/height from ``ffprobe -show_streams`` JSON.

    Args:
        raw: The decoded ffprobe output.

    Returns:
        The media descriptor.

    Raises:
        NoStreamsFound: The output lists no streams.
        ParseFailed: The output does not have the expected shape.
    """
    if not isinstance(raw, dict):
        raise ParseFailed("ffprobe output is not an object")
    streams = raw.get("streams") or []
    if not isinstance(streams, list):
        raise ParseFailed("ffprobe 'streams' is not a list")
    if not streams:
        raise NoStreamsFound("ffprobe reported no streams")

    first = streams[0]
    if not isinstance(first, dict):
        raise ParseFailed("ffprobe stream entry is not an object")
    width = _dimension(first.get("width"), "width")
    height = _dimension(first.get("height"), "height")
    return MediaDescriptor(width=width, height=height, orientation=classify_orientation(width, height))


def _dimension(value: Any, name: str) -> int:
    # Non-visual streams omit width/height entirely.
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseFailed(f"ffprobe stream {name} is not an integer: {value!r}")
    return value


class Prober(Protocol):
    async def inspect(self, path: Path) -> MediaDescriptor: ...


class FFprobeProber:
    """Runs ffprobe in a worker thread; one invocation per call, never retried."""

    def __init__(self, binary: str = "ffprobe") -> None:
        self.binary = binary
        self.logger = get_logger(component="ffprobe")

    def command(self, path: Path) -> list[str]:
        return [
            self.binary,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            str(path),
        ]

    def _run(self, path: Path) -> Dict[str, Any]:
        command = self.command(path)
        self.logger.debug("ffprobe_run", command=command)
        try:
            proc = subprocess.run(
                command,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            raise ProbeFailed(f"ffprobe exited with {exc.returncode}: {stderr}") from exc
        except FileNotFoundError as exc:
            raise ProbeFailed(f"ffprobe binary not found: {self.binary}") from exc
        except UnicodeDecodeError as exc:
            raise ProbeFailed("ffprobe output is not valid text") from exc

        try:
            return json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise ParseFailed("ffprobe output is not valid JSON") from exc

    async def inspect(self, path: Path) -> MediaDescriptor:
        raw = await asyncio.to_thread(self._run, path)
        descriptor = parse_stream_geometry(raw)
        self.logger.info(
            "media_inspected",
            width=descriptor.width,
            height=descriptor.height,
            orientation=descriptor.orientation,
        )
        return descriptor
