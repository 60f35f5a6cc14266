from __future__ import annotations

import json

import pytest

from app import cli
from app.core.config import get_settings
from tests.conftest import FakeRemuxer
from tests.test_probe import FIXTURES, fake_ffprobe


def test_probe_prints_descriptor(tmp_path, monkeypatch, capsys):
    binary = fake_ffprobe(tmp_path, stdout=(FIXTURES / "landscape_1920x1080.json").read_text())
    monkeypatch.setenv("CLIPSTORE_FFPROBE_BINARY", str(binary))
    get_settings.cache_clear()
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"ftyp")

    cli.main(["probe", "--file", str(media)])

    payload = json.loads(capsys.readouterr().out)
    assert payload == {"width": 1920, "height": 1080, "orientation": "landscape"}


def test_probe_failure_exits_3(tmp_path, monkeypatch):
    binary = fake_ffprobe(tmp_path, stderr="Invalid data", exit_code=1)
    monkeypatch.setenv("CLIPSTORE_FFPROBE_BINARY", str(binary))
    get_settings.cache_clear()
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"ftyp")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["probe", "--file", str(media)])

    assert excinfo.value.code == 3


def test_missing_file_exits_2(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["faststart", "--file", str(tmp_path / "missing.mp4")])

    assert excinfo.value.code == 2


def test_faststart_moves_result_to_output(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "FFmpegRemuxer", lambda binary: FakeRemuxer())
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"ftyp")
    target = tmp_path / "out" / "clip-faststart.mp4"

    cli.main(["faststart", "--file", str(media), "--output", str(target)])

    assert target.read_bytes() == FakeRemuxer.prefix + b"ftyp"
    assert not (tmp_path / "clip.mp4.processing").exists()


def test_no_command_prints_help_and_exits():
    with pytest.raises(SystemExit) as excinfo:
        cli.main([])

    assert excinfo.value.code == 1
