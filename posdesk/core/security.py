"""
Password hashing (bcrypt) and signed session tokens (JWT).

Access tokens carry the stored role as a hint for clients only; every
request re-reads the role from the database before permissions are resolved.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from posdesk.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


def _sign(claims: dict[str, Any], lifetime: timedelta) -> str:
    claims["exp"] = datetime.now(timezone.utc) + lifetime
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(
    user_id: int | str,
    role: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    claims: dict[str, Any] = {"sub": str(user_id), "type": ACCESS}
    if role is not None:
        claims["role"] = role
    return _sign(claims, expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))


def create_refresh_token(user_id: int | str) -> str:
    return _sign(
        {"sub": str(user_id), "type": REFRESH},
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def _verify(token: str, expected_type: str) -> dict | None:
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    return claims if claims.get("type") == expected_type else None


def decode_access_token(token: str) -> dict | None:
    """Claims of a valid, unexpired access token, else ``None``."""
    return _verify(token, ACCESS)


def decode_refresh_token(token: str) -> dict | None:
    return _verify(token, REFRESH)


def token_subject(claims: dict | None) -> int | None:
    """User id a token was issued for; ``None`` for a malformed subject."""
    if not claims:
        return None
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None
