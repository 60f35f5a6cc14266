from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import APIKeyHeader, HTTPBearer

from .config import Settings, get_settings
from .errors import Unauthenticated


security = HTTPBearer(auto_error=False)
api_key_header = APIKeyHeader(name="Authorization", auto_error=False, scheme_name="ApiKey")


def create_access_token(user_id: uuid.UUID, settings: Settings, *, expires_in: Optional[timedelta] = None) -> str:
    issued_at = datetime.now(timezone.utc)
    ttl = expires_in if expires_in is not None else timedelta(seconds=settings.access_token_ttl_seconds)
    claims = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ttl).timestamp()),
    }
    return jwt.encode(claims, settings.secrets.jwt_secret, algorithm=settings.jwt_algorithm)


def _decode_token(token: str, settings: Settings) -> dict:
    try:
        payload = jwt.decode(
            token,
            settings.secrets.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iss", "sub"]},
        )
    except jwt.PyJWTError as exc:
        raise Unauthenticated("invalid_token") from exc
    return payload


def resolve_principal(token: str, settings: Settings) -> uuid.UUID:
    """Validate an access token and return the user id it was issued for."""
    payload = _decode_token(token, settings)
    try:
        return uuid.UUID(str(payload["sub"]))
    except ValueError as exc:
        raise Unauthenticated("invalid_subject") from exc


def parse_authorization(header: Optional[str], scheme: str) -> str:
    """Return the credential from ``Authorization: <scheme> <credential>``."""
    if not header:
        raise Unauthenticated("missing_authorization")
    parts = header.split(" ")
    if len(parts) < 2 or parts[0] != scheme or not parts[1]:
        raise Unauthenticated("malformed_authorization")
    return parts[1]


async def require_admin_api_key(
    header: str | None = Depends(api_key_header),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.secrets.admin_api_key
    if not expected:
        raise Unauthenticated("admin_api_key_not_configured")
    supplied = parse_authorization(header, "ApiKey")
    if not secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise Unauthenticated("invalid_api_key")


__all__ = [
    "create_access_token",
    "resolve_principal",
    "parse_authorization",
    "security",
    "api_key_header",
    "require_admin_api_key",
]
