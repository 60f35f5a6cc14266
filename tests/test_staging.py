from __future__ import annotations

import asyncio

import pytest

from app.core.errors import StagingFailed, UploadTooLarge
from app.media.staging import CHUNK_SIZE, scratch_file, staged_upload
from tests.conftest import BytesReader, staged_leftovers


def _stage(data: bytes, *, max_bytes, directory, inspect=None):
    async def _go():
        async with staged_upload(BytesReader(data), max_bytes=max_bytes, suffix=".mp4", directory=directory) as staged:
            return inspect(staged) if inspect else staged

    return asyncio.run(_go())


def test_staged_file_holds_body_and_is_rewound(staging_dir):
    payload = b"a" * (CHUNK_SIZE + 17)

    def inspect(staged):
        assert staged.path.exists()
        assert staged.path.name.endswith(".mp4")
        assert staged.handle.tell() == 0
        staged.handle.read(10)
        return staged.size_bytes, staged.rewind().read(), staged.path

    size, content, path = _stage(payload, max_bytes=None, directory=staging_dir, inspect=inspect)

    assert size == len(payload)
    assert content == payload
    assert not path.exists()
    assert staged_leftovers(staging_dir) == []


def test_body_exactly_at_ceiling_is_accepted(staging_dir):
    size = _stage(b"z" * 64, max_bytes=64, directory=staging_dir, inspect=lambda staged: staged.size_bytes)

    assert size == 64


def test_body_over_ceiling_leaves_nothing_behind(staging_dir):
    with pytest.raises(UploadTooLarge):
        _stage(b"z" * 65, max_bytes=64, directory=staging_dir)

    assert staged_leftovers(staging_dir) == []


def test_error_inside_block_still_removes_file(staging_dir):
    seen = {}

    async def _go():
        async with staged_upload(BytesReader(b"body"), max_bytes=None, directory=staging_dir) as staged:
            seen["path"] = staged.path
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(_go())

    assert not seen["path"].exists()


def test_missing_directory_is_staging_failed(tmp_path):
    with pytest.raises(StagingFailed):
        _stage(b"body", max_bytes=None, directory=tmp_path / "does-not-exist")


def test_scratch_file_is_removed_on_exit(tmp_path):
    target = tmp_path / "clip.mp4.processing"
    target.write_bytes(b"processed")

    with pytest.raises(ValueError):
        with scratch_file(target) as path:
            assert path.read_bytes() == b"processed"
            raise ValueError("publish failed")

    assert not target.exists()
