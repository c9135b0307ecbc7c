"""
Dashboard cards written by background jobs (loan analytics rollups).

The loan reminder run appends one ``loan_analytics`` row per run.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from posdesk.db.base import Base


class AIRecommendation(Base):
    __tablename__ = "ai_recommendations"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    type: str = Column(String(50), nullable=False, index=True)  # type: ignore[assignment]
    title: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    message: str = Column(Text, nullable=False)  # type: ignore[assignment]
    priority: str = Column(String(10), nullable=False, default="medium")  # type: ignore[assignment]
    data: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    is_read: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
