"""
Async engine and session factory.

asyncpg against PostgreSQL in deployment; aiosqlite for local runs and tests.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from posdesk.core.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 10, "pool_recycle": 300}


engine = create_async_engine(settings.DATABASE_URL, echo=False, **_engine_options(settings.DATABASE_URL))

# ORM rows must stay readable after commit; the reminder engine commits per loan
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
