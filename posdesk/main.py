"""
POS Desk — application assembly.

Routers, exception handlers, CORS and the rate limiter are wired here;
business logic lives in ``core/`` and the endpoint modules.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from posdesk.api.v1.api import api_router
from posdesk.api.v1.endpoints.auth import limiter
from posdesk.core.config import settings
from posdesk.core.exceptions import register_exception_handlers
from posdesk.core.security import get_password_hash
from posdesk.db.base import Base
from posdesk.db.session import async_session_factory, engine

# Imported for their tables
from posdesk.models.ai_recommendation import AIRecommendation  # noqa: F401
from posdesk.models.audit_log import AuditLog  # noqa: F401
from posdesk.models.loan import Customer, Loan, LoanPayment, LoanReminder  # noqa: F401
from posdesk.models.user import User

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised (%d tables)", len(Base.metadata.tables))


async def seed_admin() -> bool:
    """Create the first admin account when none exists. Returns True if created."""
    async with async_session_factory() as session:
        existing = await session.execute(select(User.id).where(User.role == "admin").limit(1))
        if existing.scalar_one_or_none() is not None:
            return False
        session.add(
            User(
                email=settings.FIRST_ADMIN_EMAIL,
                hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
                full_name="Store Administrator",
                role="admin",
            )
        )
        await session.commit()
    logger.info("Default admin created: %s (password: <redacted>)", settings.FIRST_ADMIN_EMAIL)
    return True


async def init_db() -> None:
    await create_tables()
    await seed_admin()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await init_db()
    logger.info(
        "%s v%s started (AI messaging %s, WhatsApp %s)",
        settings.PROJECT_NAME,
        settings.VERSION,
        "on" if settings.OPENAI_API_KEY else "off",
        "on" if settings.WHATSAPP_API_TOKEN else "off",
    )
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Retail POS back office: role-based access control and loan reminders",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.state.limiter = limiter
    register_exception_handlers(application)
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)
    return application


app = create_app()
