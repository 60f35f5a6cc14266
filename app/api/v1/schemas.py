from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str
    environment: str
    storage_backend: str = Field(description="Object store uploads are published to.")


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class DevTokenRequest(BaseModel):
    user_id: uuid.UUID = Field(..., json_schema_extra={"example": "0b8f6c1e-2f4a-4c55-9d1e-6c8a5f0a9e21"})


class DevTokenResponse(BaseModel):
    token: str


class VideoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Any] = None


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "DevTokenRequest",
    "DevTokenResponse",
    "VideoResponse",
    "ErrorResponse",
]
