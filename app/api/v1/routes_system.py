from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.config import Settings, get_settings

from .schemas import HealthResponse


router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    return HealthResponse(
        version=settings.version,
        environment=settings.environment,
        storage_backend=settings.storage_backend,
    )


__all__ = ["router"]
