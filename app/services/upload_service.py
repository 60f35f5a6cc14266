from __future__ import annotations

import asyncio
import enum
import uuid
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import AsyncContextManager, BinaryIO, Callable, Literal, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import resolve_principal
from app.core.config import Settings
from app.core.errors import (
    BadInput,
    Forbidden,
    NotFound,
    PersistFailed,
    PipelineError,
    PublishFailed,
    Unauthenticated,
    UnsupportedMediaType,
    UploadTooLarge,
)
from app.core.logging import get_logger, upload_log_context
from app.core.storage import Storage, StorageError
from app.db.models import Video
from app.db.repository import VideoRepository
from app.media.keys import KeyStrategy, OwnerKeyStrategy, RandomKeyStrategy
from app.media.probe import Prober
from app.media.remux import Remuxer
from app.media.staging import AsyncReader, scratch_file, staged_upload
from app.media.urls import PublicURLBuilder


class UploadStage(str, enum.Enum):
    received = "received"
    authenticated = "authenticated"
    authorized = "authorized"
    staged = "staged"
    inspected = "inspected"
    transcoded = "transcoded"
    published = "published"
    persisted = "persisted"
    failed = "failed"


@dataclass(slots=True)
class UploadPart:
    content_type: Optional[str]
    reader: AsyncReader
    filename: Optional[str] = None


# Called with the byte limit for the raw request body.
PartOpener = Callable[[int], AsyncContextManager[UploadPart]]


@dataclass(frozen=True, slots=True)
class AssetVariant:
    name: Literal["video", "thumbnail"]
    form_field: str
    url_field: Literal["video_url", "thumbnail_url"]
    keys: KeyStrategy
    staging_suffix: str = ""


VIDEO = AssetVariant("video", "video", "video_url", RandomKeyStrategy(), staging_suffix=".mp4")
THUMBNAIL = AssetVariant("thumbnail", "thumbnail", "thumbnail_url", OwnerKeyStrategy())
THUMBNAIL_PREFIX = "thumbnails"


class _UploadRun:
    """Tracks and logs the stage one upload has reached."""

    def __init__(self, logger) -> None:
        self.logger = logger
        self.stage = UploadStage.received
        self.logger.info("upload_stage", stage=self.stage.value)

    def advance(self, stage: UploadStage, **details: object) -> None:
        self.stage = stage
        self.logger.info("upload_stage", stage=stage.value, **details)

    def fail(self, exc: PipelineError) -> None:
        self.logger.warning(
            "upload_failed",
            stage=self.stage.value,
            error=exc.code,
            detail=exc.detail,
            cause=repr(exc.__cause__) if exc.__cause__ else None,
        )
        self.stage = UploadStage.failed


class UploadService:
    """Drives one upload from credential check to the persisted public URL.

    Temporary files are owned by an ``AsyncExitStack`` for the whole run, so they
    are gone by the time either method returns or raises.
    """

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        session: AsyncSession,
        *,
        prober: Prober,
        remuxer: Remuxer,
        urls: PublicURLBuilder,
    ):
        self.settings = settings
        self.storage = storage
        self.videos = VideoRepository(session)
        self.prober = prober
        self.remuxer = remuxer
        self.urls = urls
        self.logger = get_logger(component="upload_service")

    async def upload_video(
        self,
        *,
        token: Optional[str],
        video_id: str,
        declared_size: Optional[int],
        open_part: PartOpener,
    ) -> Video:
        return await self._run(VIDEO, token=token, video_id=video_id, declared_size=declared_size, open_part=open_part)

    async def upload_thumbnail(
        self,
        *,
        token: Optional[str],
        video_id: str,
        declared_size: Optional[int],
        open_part: PartOpener,
    ) -> Video:
        return await self._run(THUMBNAIL, token=token, video_id=video_id, declared_size=declared_size, open_part=open_part)

    async def _run(
        self,
        variant: AssetVariant,
        *,
        token: Optional[str],
        video_id: str,
        declared_size: Optional[int],
        open_part: PartOpener,
    ) -> Video:
        with upload_log_context(video_id=video_id, variant=variant.name):
            run = _UploadRun(self.logger)
            try:
                principal = self.authenticate(token)
                run.advance(UploadStage.authenticated, user_id=str(principal))

                video = await self.authorize(video_id, principal)
                run.advance(UploadStage.authorized)

                self.check_declared_size(variant, declared_size)
                ceiling = self.settings.upload_ceiling(variant.name)

                async with AsyncExitStack() as stack:
                    part = await stack.enter_async_context(open_part(self.settings.body_limit(variant.name)))
                    media_type = self.resolve_media_type(variant, part.content_type)
                    staged = await stack.enter_async_context(
                        staged_upload(
                            part.reader,
                            max_bytes=ceiling,
                            suffix=variant.staging_suffix,
                            directory=self.settings.temp_dir,
                        )
                    )
                    run.advance(UploadStage.staged, size_bytes=staged.size_bytes, media_type=media_type)

                    body: BinaryIO
                    if variant is VIDEO:
                        descriptor = await self.prober.inspect(staged.path)
                        run.advance(UploadStage.inspected, orientation=descriptor.orientation)
                        prefix = descriptor.orientation

                        processed = stack.enter_context(scratch_file(await self.remuxer.fast_start(staged.path)))
                        run.advance(UploadStage.transcoded)
                        body = stack.enter_context(processed.open("rb"))
                    else:
                        prefix = THUMBNAIL_PREFIX
                        body = staged.rewind()

                    key = variant.keys.derive(media_type, video.id, prefix=prefix)
                    await self.publish(key, body, media_type)
                    run.advance(UploadStage.published, key=key)

                    updated = await self.persist(video, variant, key)
                    run.advance(UploadStage.persisted)
                    return updated
            except PipelineError as exc:
                run.fail(exc)
                raise

    def authenticate(self, token: Optional[str]) -> uuid.UUID:
        if not token:
            raise Unauthenticated("missing_authorization")
        return resolve_principal(token, self.settings)

    async def authorize(self, video_id: str, principal: uuid.UUID) -> Video:
        try:
            parsed = uuid.UUID(video_id)
        except ValueError as exc:
            raise BadInput(f"invalid video id: {video_id!r}") from exc

        video = await self.videos.get(parsed)
        if video is None:
            raise NotFound(f"video {parsed} does not exist")
        if video.user_id != str(principal):
            raise Forbidden(f"user {principal} does not own video {parsed}")
        return video

    def check_declared_size(self, variant: AssetVariant, declared_size: Optional[int]) -> None:
        # Content-Length covers the multipart framing too; the file itself is held
        # to the exact ceiling while staging.
        limit = self.settings.body_limit(variant.name)
        if declared_size is not None and declared_size > limit:
            raise UploadTooLarge(f"declared size {declared_size} exceeds {limit}")

    def resolve_media_type(self, variant: AssetVariant, content_type: Optional[str]) -> str:
        if not content_type or not content_type.strip():
            raise BadInput(f"missing content type for {variant.form_field}")
        media_type = content_type.split(";", 1)[0].strip()
        if not media_type:
            raise BadInput(f"invalid content type: {content_type!r}")
        if variant is VIDEO:
            if media_type.lower() != self.settings.video_media_type:
                raise UnsupportedMediaType(f"expected {self.settings.video_media_type}, got {media_type}")
            return self.settings.video_media_type
        return media_type

    async def publish(self, key: str, body: BinaryIO, media_type: str) -> None:
        try:
            await asyncio.to_thread(self.storage.put_object, key, body, content_type=media_type)
        except StorageError as exc:
            raise PublishFailed(f"could not store {key}") from exc

    async def persist(self, video: Video, variant: AssetVariant, key: str) -> Video:
        video_id = video.id
        previous_url = getattr(video, variant.url_field)
        url = self.urls.url_for(key)
        setattr(video, variant.url_field, url)
        try:
            return await self.videos.update(video)
        except SQLAlchemyError as exc:
            if previous_url == url:
                # Deterministic key overwrote the object the stored record already serves.
                self.logger.warning("published_object_kept", key=key)
            else:
                await self._discard_published(key)
            raise PersistFailed(f"could not record {variant.url_field} for video {video_id}") from exc

    async def _discard_published(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.storage.delete_object, key)
        except StorageError as exc:
            self.logger.error("orphaned_object", key=key, error=str(exc))
        else:
            self.logger.info("published_object_removed", key=key)


__all__ = [
    "UploadStage",
    "UploadPart",
    "PartOpener",
    "AssetVariant",
    "VIDEO",
    "THUMBNAIL",
    "THUMBNAIL_PREFIX",
    "UploadService",
]
