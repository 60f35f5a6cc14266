from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import security
from app.core.config import Settings, get_settings
from app.core.storage import Storage
from app.services.upload_service import UploadService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover - misconfigured app
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.storage
    return storage


def get_app_settings() -> Settings:
    return get_settings()


def get_upload_service(
    request: Request,
    session: AsyncSession = Depends(get_session),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
) -> UploadService:
    state = request.app.state
    return UploadService(
        settings,
        storage,
        session,
        prober=state.prober,
        remuxer=state.remuxer,
        urls=state.urls,
    )


def get_bearer_token(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> Optional[str]:
    return credentials.credentials if credentials else None


UploadServiceDependency = Annotated[UploadService, Depends(get_upload_service)]
BearerToken = Annotated[Optional[str], Depends(get_bearer_token)]


__all__ = [
    "get_session",
    "get_storage",
    "get_app_settings",
    "get_upload_service",
    "get_bearer_token",
    "UploadServiceDependency",
    "BearerToken",
]
