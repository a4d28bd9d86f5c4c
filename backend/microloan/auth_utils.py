"""JWT access tokens and the current-actor dependency.

Tokens are issued elsewhere; this service only verifies them.  The payload
carries ``sub`` (user id), ``role`` and optionally ``email``.  The token is
read from the ``Authorization: Bearer`` header or, failing that, the auth
cookie.  Anything missing, malformed or expired fails closed with 401.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt

from microloan.config import settings
from microloan.services.authorization import Actor, UserRole
from microloan.services.errors import UnauthorizedError

ALGORITHM = "HS256"

security = HTTPBearer(auto_error=False)


# ── Token helpers ────────────────────────────────────────────


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and return the JWT payload. Raises JWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])


def actor_from_token(token: str) -> Actor:
    """Turn an access token into an Actor, or raise UnauthorizedError."""
    try:
        payload = decode_token(token)
    except ExpiredSignatureError:
        raise UnauthorizedError("Token expired. Please login again.", code="TOKEN_EXPIRED")
    except JWTError:
        raise UnauthorizedError("Invalid token.", code="INVALID_TOKEN")

    if payload.get("type", "access") != "access":
        raise UnauthorizedError("Invalid token.", code="INVALID_TOKEN")
    try:
        user_id = int(payload["sub"])
        role = UserRole(payload["role"])
    except (KeyError, ValueError, TypeError):
        raise UnauthorizedError("Invalid token.", code="INVALID_TOKEN")
    return Actor(user_id=user_id, role=role, email=payload.get("email"))


# ── Actor dependency ────────────────────────────────────────


async def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    token = credentials.credentials if credentials else request.cookies.get(settings.auth_cookie_name)
    if not token:
        raise UnauthorizedError("Access denied. No token provided.")
    return actor_from_token(token)
