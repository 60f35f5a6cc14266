from __future__ import annotations

import argparse
import asyncio
import subprocess
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from rich.console import Console

from .core.config import get_settings
from .core.errors import PipelineError
from .media.probe import FFprobeProber
from .media.remux import FFmpegRemuxer

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="clipstore media developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    probe_parser = subparsers.add_parser("probe", help="Run ffprobe and print the detected geometry and orientation")
    probe_parser.add_argument("--file", required=True, help="Path to the source media file")
    probe_parser.set_defaults(func=_cmd_probe)

    faststart_parser = subparsers.add_parser("faststart", help="Remux a file so playback can start before download ends")
    faststart_parser.add_argument("--file", required=True, help="Path to the source media file")
    faststart_parser.add_argument(
        "--output",
        default=None,
        help="Where to write the result (default: <file>.processing next to the source).",
    )
    faststart_parser.set_defaults(func=_cmd_faststart)
    return parser


def _resolve_media(raw: str) -> Path:
    media_path = Path(raw).expanduser().resolve()
    if not media_path.exists():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    return media_path


def _cmd_probe(args: argparse.Namespace) -> None:
    """Run ffprobe and print the descriptor as JSON.

    Args:
        args: The command-line arguments.
    """
    media_path = _resolve_media(args.file)
    prober = FFprobeProber(get_settings().ffprobe_binary)
    try:
        descriptor = asyncio.run(prober.inspect(media_path))
    except PipelineError as exc:
        console.print(f"[red]{exc.code}:[/] {exc.detail}")
        sys.exit(3)
    console.print_json(data=asdict(descriptor))


def _cmd_faststart(args: argparse.Namespace) -> None:
    """Remux the file with the moov atom first and report where it went.

    Args:
        args: The command-line arguments.
    """
    media_path = _resolve_media(args.file)
    remuxer = FFmpegRemuxer(get_settings().ffmpeg_binary)
    try:
        processed = asyncio.run(remuxer.fast_start(media_path))
    except PipelineError as exc:
        console.print(f"[red]{exc.code}:[/] {exc.detail}")
        sys.exit(3)

    if args.output:
        target = Path(args.output).expanduser().resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        processed = processed.replace(target)
    console.print(f"[green]Fast-start copy written to {processed}[/]")


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    checks = {
        "ffmpeg": [settings.ffmpeg_binary, "-version"],
        "ffprobe": [settings.ffprobe_binary, "-version"],
    }
    results = {}
    for label, cmd in checks.items():
        try:
            subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True)
            results[label] = True
        except (OSError, subprocess.CalledProcessError):
            results[label] = False

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg or set CLIPSTORE_FFMPEG_BINARY.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
