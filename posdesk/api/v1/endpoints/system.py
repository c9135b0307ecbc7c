"""
Health probe and audit log browsing.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from posdesk.api.v1.deps import get_db, require_capability
from posdesk.core.audit import AUDIT_CATEGORIES
from posdesk.core.config import settings
from posdesk.models.audit_log import AuditLog
from posdesk.schemas.common import AuditLogRead, HealthResponse

router = APIRouter(tags=["system"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Check database and Redis connectivity."""
    result = HealthResponse(db=False, redis=False)
    try:
        await db.execute(text("SELECT 1"))
        result.db = True
    except Exception as e:
        logger.warning("Health check: database unreachable: %s", e)

    try:
        import redis.asyncio as aioredis

        r = aioredis.from_url(settings.REDIS_URL)
        await r.ping()
        result.redis = True
        await r.aclose()
    except Exception as e:
        logger.warning("Health check: redis unreachable: %s", e)

    return result


@router.get(
    "/audit-logs",
    response_model=list[AuditLogRead],
    dependencies=[Depends(require_capability("canManageStaff"))],
)
async def list_audit_logs(
    category: str | None = None,
    limit: int = Query(default=100, le=1000),
    db: AsyncSession = Depends(get_db),
) -> list[AuditLog]:
    query = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if category is not None:
        if category not in AUDIT_CATEGORIES:
            raise HTTPException(status_code=400, detail=f"Unknown audit category '{category}'")
        query = query.where(AuditLog.category == category)
    result = await db.execute(query.limit(limit))
    return list(result.scalars().all())
