"""
FastAPI dependencies — database session, current actor, permission
snapshot, route guards, and the outbound service clients.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Coroutine
from typing import Any, Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from posdesk.core.messaging import MessageGenerator, build_message_generator
from posdesk.core.notifications import NotificationChannel, WhatsAppChannel
from posdesk.core.permissions import (CAPABILITIES, ROLES,
                                      AccessControlResolver,
                                      PermissionSnapshot, access_denied_detail,
                                      is_allowed)
from posdesk.core.security import decode_access_token, token_subject
from posdesk.core.text_generation import TextGenerationClient
from posdesk.db.session import async_session_factory
from posdesk.models.user import User

# auto_error=False so the cookie can be checked when the header is missing
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

PREVIEW_COOKIE = "preview_role"


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user_optional(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Decode JWT from Header OR Cookie; ``None`` when nobody is signed in."""
    final_token = token
    if not final_token and access_token:
        final_token = access_token.removeprefix("Bearer ")
    if not final_token:
        return None

    user_id = token_subject(decode_access_token(final_token))
    if user_id is None:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_current_user(
    user: User | None = Depends(get_current_user_optional),
) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Stored role must be admin; a preview never grants or removes this."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


# ── Permissions ─────────────────────────────────────────────────────
async def get_resolver(
    user: User | None = Depends(get_current_user_optional),
    preview_role: Optional[str] = Cookie(default=None),
) -> AccessControlResolver:
    """Resolver for this request, with any admin preview cookie applied."""
    resolver = AccessControlResolver()

    async def fetch_role() -> str | None:
        if user is None or not user.is_active:
            return None
        return user.role

    await resolver.load_permissions(fetch_role)
    if preview_role in ROLES:
        resolver.set_preview_role(preview_role)
    return resolver


async def get_permissions(
    resolver: AccessControlResolver = Depends(get_resolver),
) -> PermissionSnapshot:
    return resolver.snapshot


Guard = Callable[..., Coroutine[Any, Any, PermissionSnapshot]]


def _guard(capability: str | None, roles: tuple[str, ...] | None) -> Guard:
    async def _check(
        _user: User = Depends(get_current_active_user),
        perms: PermissionSnapshot = Depends(get_permissions),
    ) -> PermissionSnapshot:
        if not is_allowed(perms, capability, roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=access_denied_detail(perms, roles),
            )
        return perms

    return _check


def require_capability(capability: str) -> Guard:
    """Route guard: the effective role must hold *capability*."""
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability: {capability}")
    return _guard(capability, None)


def require_roles(*roles: str) -> Guard:
    """Route guard: the effective role must be one of *roles*."""
    unknown = set(roles) - set(ROLES)
    if unknown:
        raise ValueError(f"Unknown roles: {sorted(unknown)}")
    return _guard(None, roles)


# ── Outbound services ───────────────────────────────────────────────
def get_text_generation_client() -> TextGenerationClient:
    return TextGenerationClient.from_settings()


def get_message_generator(
    client: TextGenerationClient = Depends(get_text_generation_client),
) -> MessageGenerator:
    return build_message_generator(client)


def get_notification_channel() -> NotificationChannel:
    return WhatsAppChannel.from_settings()
