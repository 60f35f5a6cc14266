from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Request
from starlette.datastructures import UploadFile
from starlette.formparsers import MultiPartException, MultiPartParser

from app.api import deps
from app.core.errors import BadInput, UploadTooLarge
from app.services.upload_service import THUMBNAIL, VIDEO, PartOpener, UploadPart

from . import schemas


router = APIRouter(prefix="/videos", tags=["uploads"])


def _multipart_body(field: str) -> dict[str, Any]:
    return {
        "requestBody": {
            "required": True,
            "content": {
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "properties": {field: {"type": "string", "format": "binary"}},
                        "required": [field],
                    }
                }
            },
        }
    }


def _declared_size(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise BadInput(f"invalid content-length: {raw!r}") from exc


async def _bounded_body(request: Request, limit: int) -> AsyncIterator[bytes]:
    """Yield the raw body, failing as soon as more than ``limit`` bytes arrive."""
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            raise UploadTooLarge(f"request body exceeded {limit} bytes")
        yield chunk


def _form_part(request: Request, field: str) -> PartOpener:
    """Defer multipart parsing until the service has authorized the request."""

    @asynccontextmanager
    async def open_part(body_limit: int) -> AsyncIterator[UploadPart]:
        content_type = request.headers.get("content-type", "")
        if not content_type.lower().startswith("multipart/form-data"):
            raise BadInput(f"expected multipart/form-data, got {content_type!r}")
        parser = MultiPartParser(request.headers, _bounded_body(request, body_limit), max_files=1, max_fields=8)
        try:
            form = await parser.parse()
        except MultiPartException as exc:
            raise BadInput(f"malformed multipart body: {exc.message}") from exc
        except KeyError as exc:
            raise BadInput("multipart boundary missing") from exc
        try:
            upload = form.get(field)
            if not isinstance(upload, UploadFile):
                raise BadInput(f"missing form file '{field}'")
            yield UploadPart(content_type=upload.content_type, reader=upload, filename=upload.filename)
        finally:
            await form.close()

    return open_part


@router.post("/{video_id}/video", response_model=schemas.VideoResponse, openapi_extra=_multipart_body(VIDEO.form_field))
async def upload_video(
    video_id: str,
    request: Request,
    service: deps.UploadServiceDependency,
    token: deps.BearerToken,
) -> schemas.VideoResponse:
    video = await service.upload_video(
        token=token,
        video_id=video_id,
        declared_size=_declared_size(request),
        open_part=_form_part(request, VIDEO.form_field),
    )
    return schemas.VideoResponse.model_validate(video)


@router.post(
    "/{video_id}/thumbnail",
    response_model=schemas.VideoResponse,
    openapi_extra=_multipart_body(THUMBNAIL.form_field),
)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    service: deps.UploadServiceDependency,
    token: deps.BearerToken,
) -> schemas.VideoResponse:
    video = await service.upload_thumbnail(
        token=token,
        video_id=video_id,
        declared_size=_declared_size(request),
        open_part=_form_part(request, THUMBNAIL.form_field),
    )
    return schemas.VideoResponse.model_validate(video)


__all__ = ["router"]
