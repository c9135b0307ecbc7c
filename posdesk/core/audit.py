"""
Audit trail helper.

Writing the audit row must never break the action being audited, so
database errors here are logged and rolled back, not raised.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from posdesk.models.audit_log import AuditLog
from posdesk.models.user import User

logger = logging.getLogger(__name__)

AUDIT_CATEGORIES = (
    "security",
    "financial",
    "inventory",
    "user_management",
    "settings",
    "sales",
    "system",
)


async def log_action(
    db: AsyncSession,
    user: User | None,
    action: str,
    category: str,
    details: dict[str, Any] | None = None,
    status: str = "success",
    risk_level: str = "low",
) -> None:
    if category not in AUDIT_CATEGORIES:
        raise ValueError(f"Unknown audit category: {category}")
    entry = AuditLog(
        user_id=user.id if user else None,
        user_email=user.email if user else None,
        user_role=user.role if user else "system",
        action=action,
        category=category,
        details=details or {},
        status=status,
        risk_level=risk_level,
    )
    try:
        db.add(entry)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Error logging audit action %s: %s", action, exc)
