"""Small shared response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LogoutResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    db: bool
    redis: bool


class AuditLogRead(BaseModel):
    id: int
    user_id: int | None
    user_email: str | None
    user_role: str | None
    action: str
    category: str
    details: dict
    status: str
    risk_level: str
    created_at: datetime | None

    model_config = {"from_attributes": True}
