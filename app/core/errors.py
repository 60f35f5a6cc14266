from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for request-scoped upload failures.

    ``message`` is safe to show to callers; ``detail`` is internal and only logged.
    The underlying cause travels as ``__cause__`` (``raise ... from exc``).
    """

    status_code: int = 500
    code: str = "upload_failed"
    message: str = "The upload could not be processed."

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail or self.message)
        self.detail = detail or self.message


class Unauthenticated(PipelineError):
    status_code = 401
    code = "unauthenticated"
    message = "Missing or invalid credentials."


class Forbidden(PipelineError):
    status_code = 403
    code = "forbidden"
    message = "Not allowed to modify this video."


class NotFound(PipelineError):
    status_code = 404
    code = "video_not_found"
    message = "Video not found."


class BadInput(PipelineError):
    status_code = 400
    code = "bad_input"
    message = "The request is malformed."


class UnsupportedMediaType(BadInput):
    status_code = 415
    code = "unsupported_media_type"
    message = "Unsupported media type."


class UploadTooLarge(BadInput):
    status_code = 413
    code = "upload_too_large"
    message = "Upload exceeds the allowed size."


class StagingFailed(PipelineError):
    code = "staging_failed"
    message = "Could not store the upload for processing."


class ProbeFailed(PipelineError):
    status_code = 422
    code = "probe_failed"
    message = "Could not inspect the uploaded media."


class NoStreamsFound(ProbeFailed):
    code = "no_streams_found"
    message = "The uploaded media has no streams."


class ParseFailed(ProbeFailed):
    code = "probe_parse_failed"
    message = "Could not read the media inspection result."


class TranscodeFailed(PipelineError):
    code = "transcode_failed"
    message = "Could not process the uploaded video."


class PublishFailed(PipelineError):
    status_code = 502
    code = "publish_failed"
    message = "Could not upload the asset to storage."


class PersistFailed(PipelineError):
    code = "persist_failed"
    message = "Could not update the video."


__all__ = [
    "PipelineError",
    "Unauthenticated",
    "Forbidden",
    "NotFound",
    "BadInput",
    "UnsupportedMediaType",
    "UploadTooLarge",
    "StagingFailed",
    "ProbeFailed",
    "NoStreamsFound",
    "ParseFailed",
    "TranscodeFailed",
    "PublishFailed",
    "PersistFailed",
]
