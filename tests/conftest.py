"""
Shared test fixtures for the POS Desk test suite.

Async throughout (aiosqlite + AsyncSession); outbound WhatsApp and AI calls
are replaced by in-memory stubs through FastAPI dependency overrides.
"""

import os
import sys
from datetime import date
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["WHATSAPP_API_TOKEN"] = ""
os.environ["TIMEZONE_OFFSET"] = "+00:00"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from posdesk.api.v1.deps import (get_current_user_optional, get_db,
                                 get_message_generator,
                                 get_notification_channel)
from posdesk.core.exceptions import NotificationError
from posdesk.core.messaging import TemplateGenerator
from posdesk.core.notifications import NotificationChannel
from posdesk.core.security import get_password_hash
from posdesk.db.base import Base
from posdesk.main import app
from posdesk.models.loan import Customer, Loan
from posdesk.models.user import User

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before usage and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


app.dependency_overrides[get_db] = _override_get_db
app.dependency_overrides[get_message_generator] = lambda: TemplateGenerator()


# ── Notification stub ───────────────────────────────────────────────
class StubChannel(NotificationChannel):
    """Records every send; set ``fail=True`` to simulate a delivery error."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, phone, title, message, type="alert"):
        if self.fail:
            raise NotificationError("stub delivery failure")
        self.sent.append({"phone": phone, "title": title, "message": message, "type": type})
        return f"wamid.{len(self.sent)}"


@pytest.fixture
def channel() -> StubChannel:
    stub = StubChannel()
    app.dependency_overrides[get_notification_channel] = lambda: stub
    yield stub
    app.dependency_overrides.pop(get_notification_channel, None)


@pytest.fixture
async def async_client(channel) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with TestingSessionLocal() as session:
        yield session


# ── Actors ──────────────────────────────────────────────────────────
async def create_user(db: AsyncSession, role: str, email: str | None = None, **kwargs) -> User:
    user = User(
        email=email or f"{role}@example.com",
        hashed_password=get_password_hash(kwargs.pop("password", "password123")),
        role=role,
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
def login_as(db_session):
    """Persist a user with *role* and make it the request's signed-in actor."""

    async def _login(role: str, **kwargs) -> User:
        user = await create_user(db_session, role, **kwargs)

        async def _current_user() -> User:
            return user

        app.dependency_overrides[get_current_user_optional] = _current_user
        return user

    yield _login
    app.dependency_overrides.pop(get_current_user_optional, None)


# ── Loan data ───────────────────────────────────────────────────────
async def create_loan(
    db: AsyncSession,
    due_date: date,
    balance: float = 150.0,
    name: str = "Jane",
    phone: str = "+1 (555) 010-0000",
    status: str = "active",
    repayment_behavior: dict | list | None = None,
) -> Loan:
    customer = Customer(name=name, phone=phone, repayment_behavior=repayment_behavior or {})
    db.add(customer)
    await db.flush()
    loan = Loan(
        customer_id=customer.id,
        total_amount=balance,
        paid_amount=0.0,
        remaining_balance=balance,
        due_date=due_date,
        status=status,
    )
    db.add(loan)
    await db.commit()
    await db.refresh(loan)
    return loan


@pytest.fixture
def make_loan(db_session):
    """Factory for a customer plus one open loan."""

    async def _make(due_date: date, **kwargs) -> Loan:
        return await create_loan(db_session, due_date, **kwargs)

    return _make


@pytest.fixture
def session_factory():
    """Session factory bound to the in-memory test database."""
    return TestingSessionLocal
