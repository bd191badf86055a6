"""
Token and key helpers.

Access and refresh tokens are HS256 JWTs that differ only in their `type`
claim and lifetime. Every token carries a `jti` so it can be revoked
individually through Redis.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from projecthub.core.config import settings

ACCESS = "access"
REFRESH = "refresh"


def _encode(user_id: str, token_type: str, lifetime: timedelta, jti: str) -> str:
    issued_at = datetime.now(UTC)
    claims: dict[str, Any] = {
        "sub": user_id,
        "jti": jti,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, expected_type: str) -> dict[str, Any]:
    claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if claims.get("type") != expected_type:
        raise JWTError(f"Expected a {expected_type} token")
    return claims


def create_access_token(user_id: str, jti: str | None = None) -> str:
    lifetime = timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(user_id, ACCESS, lifetime, jti or str(uuid.uuid4()))


def create_refresh_token(user_id: str) -> tuple[str, str]:
    """Return `(token, jti)`; the jti is what gets stored in Redis."""
    jti = str(uuid.uuid4())
    lifetime = timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode(user_id, REFRESH, lifetime, jti), jti


def decode_access_token(token: str) -> dict[str, Any]:
    """Raises JWTError on a bad signature, expiry, or a refresh token."""
    return _decode(token, ACCESS)


def decode_refresh_token(token: str) -> dict[str, Any]:
    return _decode(token, REFRESH)


# Redis keys

def refresh_token_redis_key(user_id: str, jti: str) -> str:
    return f"refresh:{user_id}:{jti}"


def blacklist_redis_key(jti: str) -> str:
    return f"blacklist:{jti}"


def otp_redis_key(email: str) -> str:
    return f"otp:{email.lower()}"


def generate_otp_code() -> str:
    """Six digits, never starting with zero."""
    return str(100000 + secrets.randbelow(900000))
