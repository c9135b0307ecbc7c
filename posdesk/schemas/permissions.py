"""Pydantic schemas for the permission snapshot and navigation."""

from __future__ import annotations

from pydantic import BaseModel, field_validator

from posdesk.core.permissions import ROLES


class PermissionsRead(BaseModel):
    role: str | None
    effective_role: str | None
    actual_role: str | None
    preview_role: str | None
    is_preview_mode: bool
    is_actual_admin: bool
    is_admin: bool
    is_manager: bool
    is_supervisor: bool
    is_cashier: bool
    capabilities: dict[str, bool]


class PreviewRoleRequest(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def _validate_role(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return v


class NavItemRead(BaseModel):
    id: str
    label: str
    section: str
    badge: str | None = None

    model_config = {"from_attributes": True}
