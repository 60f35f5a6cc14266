from __future__ import annotations

import subprocess

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.auth import create_access_token, require_admin_api_key
from app.core.config import Settings, get_settings

from .schemas import DevTokenRequest, DevTokenResponse, EnvCheckResponse


router = APIRouter(prefix="/admin", tags=["admin"])


def _probe_binary(command: list[str]) -> bool:
    try:
        subprocess.run(command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True)
        return True
    except (OSError, subprocess.CalledProcessError):
        return False


@router.get(
    "/env-check",
    response_model=EnvCheckResponse,
    summary="Validate ffmpeg toolchain",
    dependencies=[Depends(require_admin_api_key)],
)
async def env_check(settings: Settings = Depends(get_settings)) -> EnvCheckResponse:
    return EnvCheckResponse(
        ffmpeg=_probe_binary([settings.ffmpeg_binary, "-version"]),
        ffprobe=_probe_binary([settings.ffprobe_binary, "-version"]),
    )


@router.post("/dev-token", response_model=DevTokenResponse, summary="Mint development JWT")
async def mint_dev_token(payload: DevTokenRequest, settings: Settings = Depends(get_settings)) -> DevTokenResponse:
    if settings.environment_lower not in {"development", "dev"}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="dev_token_disabled")
    return DevTokenResponse(token=create_access_token(payload.user_id, settings))


__all__ = ["router"]
