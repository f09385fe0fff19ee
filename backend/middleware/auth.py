"""
Session authentication helpers.

The credential layer (login, password hashing, 2FA) issues short-lived HS256
JWT access tokens whose `sub` is the user id. This module only verifies
them; services trust the resulting user id without re-validating it.

Tokens are accepted from:
    - Authorization: Bearer <jwt>   (preferred)
    - `token` cookie                (browser sessions)
"""
import logging
from datetime import datetime, timezone, timedelta
from fastapi import Cookie, HTTPException, Header
from typing import Optional

import jwt

from config import settings
from domain.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthorizedError("Token is not in Bearer format, authorization denied.")
    token = parts[1].strip()
    return token or None


def decode_access_token(token: str) -> dict:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Token is malformed or signature is invalid.")


def issue_access_token(*, user_id: int) -> str:
    """Mint an access token for `user_id` (used by the credential layer and tests)."""
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


async def require_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    token: Optional[str] = Cookie(None),
) -> int:
    """Dependency: the authenticated user id, or 401."""
    raw = _parse_bearer_token(authorization) or token
    if not raw:
        raise UnauthorizedError("No token (cookie or Bearer), authorization denied.")
    payload = decode_access_token(raw)
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        logger.warning("Access token decoded but subject is not a user id")
        raise UnauthorizedError("Token payload is invalid (missing user id).")
