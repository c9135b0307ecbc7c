"""
Permission snapshot, admin role preview and the filtered navigation list.

The preview role lives in an HttpOnly cookie so every later request is
evaluated as the previewed role until it is cleared or the admin signs out.
Non-admins get their unchanged snapshot back from the preview endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from posdesk.api.v1.deps import (PREVIEW_COOKIE, get_current_user_optional,
                                 get_db, get_permissions, get_resolver)
from posdesk.core.audit import log_action
from posdesk.core.config import settings
from posdesk.core.permissions import (AccessControlResolver,
                                      PermissionSnapshot, filter_navigation)
from posdesk.models.user import User
from posdesk.schemas.permissions import (NavItemRead, PermissionsRead,
                                         PreviewRoleRequest)

router = APIRouter(tags=["permissions"])
logger = logging.getLogger(__name__)


def _store_preview(response: Response, snapshot: PermissionSnapshot) -> None:
    if snapshot.is_preview_mode:
        response.set_cookie(
            key=PREVIEW_COOKIE,
            value=snapshot.preview_role or "",
            httponly=True,
            secure=settings.COOKIE_SECURE,
            samesite="lax",
        )
    else:
        response.delete_cookie(PREVIEW_COOKIE)


@router.get("/permissions/me", response_model=PermissionsRead)
async def read_permissions(
    perms: PermissionSnapshot = Depends(get_permissions),
) -> dict:
    """Current permission snapshot; all capabilities false when signed out."""
    return perms.as_dict()


@router.put("/permissions/preview", response_model=PermissionsRead)
async def set_preview_role(
    body: PreviewRoleRequest,
    response: Response,
    resolver: AccessControlResolver = Depends(get_resolver),
    user: User | None = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Preview the app as *role* (admin only). ``admin`` clears the preview."""
    if not resolver.snapshot.is_actual_admin:
        return resolver.snapshot.as_dict()

    snapshot = resolver.set_preview_role(body.role)
    _store_preview(response, snapshot)
    await log_action(db, user, "preview_role", "security", {"role": body.role})
    return snapshot.as_dict()


@router.delete("/permissions/preview", response_model=PermissionsRead)
async def clear_preview_role(
    response: Response,
    resolver: AccessControlResolver = Depends(get_resolver),
    user: User | None = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
) -> dict:
    if not resolver.snapshot.is_actual_admin:
        return resolver.snapshot.as_dict()

    previous = resolver.snapshot.preview_role
    snapshot = resolver.clear_preview_role()
    _store_preview(response, snapshot)
    if previous:
        await log_action(db, user, "exit_preview", "security", {"role": previous})
    return snapshot.as_dict()


@router.get("/navigation", response_model=list[NavItemRead])
async def read_navigation(
    perms: PermissionSnapshot = Depends(get_permissions),
) -> list:
    """Navigation entries the effective role may open."""
    return filter_navigation(perms)
