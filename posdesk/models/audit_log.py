"""
AuditLog model — who did what, as which role.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String

from posdesk.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_category_created", "category", "created_at"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    user_email: str | None = Column(String(320), nullable=True)  # type: ignore[assignment]
    user_role: str | None = Column(String(20), nullable=True)  # type: ignore[assignment]
    action: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    category: str = Column(String(30), nullable=False)  # type: ignore[assignment]
    # security | financial | user_management | system | settings | sales | inventory
    details: dict = Column(JSON, nullable=False, default=dict)  # type: ignore[assignment]
    status: str = Column(String(10), nullable=False, default="success")  # type: ignore[assignment]
    risk_level: str = Column(String(10), nullable=False, default="low")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
