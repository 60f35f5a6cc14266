import asyncio
import io
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import jwt
import pytest
from fastapi.testclient import TestClient

from app.core.config import get_settings
from app.core.db import Base, create_engine, create_session_factory
from app.db.repository import VideoRepository
from app.main import create_app
from app.media.probe import MediaDescriptor, classify_orientation
from app.media.remux import processed_path_for
from app.services.upload_service import UploadPart

TEST_SECRET = "test-secret"
TEST_ISSUER = "clipstore-access"
ADMIN_KEY = "test-admin-key"
OWNER_ID = uuid.UUID("6f1c2a4e-8b7d-4c3e-9a10-5d2f7e8b9c01")
STRANGER_ID = uuid.UUID("0b8f6c1e-2f4a-4c55-9d1e-6c8a5f0a9e21")


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default clipstore environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    db_path = tmp_path / "clipstore_test.db"
    staging_dir = tmp_path / "staging"
    staging_dir.mkdir()

    monkeypatch.setenv("CLIPSTORE_ENV", "test")
    monkeypatch.setenv("CLIPSTORE_LOG_LEVEL", "debug")
    monkeypatch.setenv("CLIPSTORE_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("CLIPSTORE_STORAGE_BACKEND", "local")
    monkeypatch.setenv("CLIPSTORE_ASSETS_ROOT", str(tmp_path / "assets"))
    monkeypatch.setenv("CLIPSTORE_PUBLIC_URL_STRATEGY", "local")
    monkeypatch.setenv("CLIPSTORE_PUBLIC_BASE_URL", "http://localhost:8091")
    monkeypatch.setenv("CLIPSTORE_TEMP_DIR", str(staging_dir))
    monkeypatch.setenv("CLIPSTORE_JWT_SECRET", TEST_SECRET)
    monkeypatch.setenv("CLIPSTORE_ADMIN_API_KEY", ADMIN_KEY)

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_setup())

    yield

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


@pytest.fixture()
def staging_dir(configure_environment, tmp_path) -> Path:
    return tmp_path / "staging"


def staged_leftovers(directory: Path) -> list[Path]:
    return sorted(directory.glob("clipstore-upload-*"))


def build_token(
    user_id: uuid.UUID | str,
    *,
    secret: str = TEST_SECRET,
    issuer: str = TEST_ISSUER,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    issued_at = datetime.now(timezone.utc)
    payload = {
        "iss": issuer,
        "sub": str(user_id),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + expires_in).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture()
def owner_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(OWNER_ID)}"}


@pytest.fixture()
def stranger_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(STRANGER_ID)}"}


@pytest.fixture()
def seeded_video(configure_environment):
    """A video row owned by ``OWNER_ID`` with no assets attached yet."""
    settings = get_settings()
    engine = create_engine(settings)
    factory = create_session_factory(engine)

    async def _seed():
        async with factory() as session:
            video = await VideoRepository(session).create(user_id=OWNER_ID, title="Boots and cats")
        await engine.dispose()
        return video

    return asyncio.run(_seed())


class FakeProber:
    """Stands in for ffprobe; answers with a fixed geometry or raises ``error``."""

    def __init__(self, width: int = 1920, height: int = 1080, error: Optional[Exception] = None):
        self.width = width
        self.height = height
        self.error = error
        self.calls: list[Path] = []

    async def inspect(self, path: Path) -> MediaDescriptor:
        self.calls.append(path)
        if self.error is not None:
            raise self.error
        return MediaDescriptor(self.width, self.height, classify_orientation(self.width, self.height))


class FakeRemuxer:
    """Stands in for ffmpeg; writes ``FASTSTART`` + the staged bytes to the processed path."""

    prefix = b"FASTSTART"

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.outputs: list[Path] = []

    async def fast_start(self, input_path: Path) -> Path:
        if self.error is not None:
            raise self.error
        output = processed_path_for(input_path)
        output.write_bytes(self.prefix + input_path.read_bytes())
        self.outputs.append(output)
        return output


class BytesReader:
    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)
        self.reads = 0

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        return self._buffer.read(size)


def part_opener(data: bytes, content_type: Optional[str], *, filename: str = "upload.bin"):
    """Build an opener that records whether the body was ever opened."""
    state = {"opened": False, "body_limit": None}

    @asynccontextmanager
    async def open_part(body_limit: int):
        state["opened"] = True
        state["body_limit"] = body_limit
        yield UploadPart(content_type=content_type, reader=BytesReader(data), filename=filename)

    open_part.state = state
    return open_part


@pytest.fixture()
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture()
def fake_remuxer() -> FakeRemuxer:
    return FakeRemuxer()


@pytest.fixture()
def client(configure_environment, fake_prober, fake_remuxer):
    app = create_app()
    with TestClient(app) as client:
        app.state.prober = fake_prober
        app.state.remuxer = fake_remuxer
        yield client
