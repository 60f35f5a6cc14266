from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api import deps
from app.core.storage import Storage, StorageError
from app.media.urls import ASSETS_MOUNT


router = APIRouter(prefix=ASSETS_MOUNT, tags=["assets"])


@router.get("/{key:path}", summary="Serve a published asset")
async def get_asset(key: str, storage: Storage = Depends(deps.get_storage)) -> Response:
    try:
        stored = await asyncio.to_thread(storage.get_object, key)
    except FileNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="asset_not_found")
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="asset_unavailable") from exc
    return Response(content=stored.data, media_type=stored.content_type)


__all__ = ["router"]
