"""
Test Configuration and Fixtures

Shared fixtures for Spare Finance API tests.
Provides isolated database, authenticated clients, and fake integrations.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from spare_finance.api.main import create_app
from spare_finance.api.db.models import Account, Base, Category, CategoryGroup, User
from spare_finance.api.db.session import get_db
from spare_finance.api.auth.jwt import create_access_token
from spare_finance.api.auth.service import hash_password
from spare_finance.api.billing.plans import PlanService
from spare_finance.api.households.service import HouseholdService
from spare_finance.api.services.email import EmailSender, get_email_sender


# ==================== Database Fixtures ====================


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async_session = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        await PlanService(session).ensure_default_plans()
        await session.commit()
        yield session
        await session.rollback()


# ==================== Application Fixtures ====================


@pytest.fixture(scope="function")
def email_sender() -> EmailSender:
    """In-memory email sender; tests read codes from .sent."""
    return EmailSender()


@pytest.fixture(scope="function")
def app(db_session, email_sender) -> FastAPI:
    """Create FastAPI app with test database."""
    test_app = create_app()

    async def override_get_db():
        yield db_session

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_email_sender] = lambda: email_sender
    return test_app


@pytest_asyncio.fixture(scope="function")
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ==================== User Fixtures ====================


async def make_user(
    db: AsyncSession,
    email: str,
    password: str = "TestPassword123!",
    is_admin: bool = False,
    is_verified: bool = True,
) -> User:
    """Verified user with a personal household and the free plan."""
    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password(password),
        first_name="Test",
        last_name="User",
        is_active=True,
        is_admin=is_admin,
        is_verified=is_verified,
    )
    db.add(user)
    await db.flush()
    await HouseholdService(db).create_household(user, name="Personal")
    await PlanService(db).create_free_subscription(user.id)
    await db.commit()
    await db.refresh(user)
    return user


def headers_for(user: User) -> dict:
    token = create_access_token(user_id=user.id, email=user.email, is_admin=user.is_admin)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def test_user(db_session) -> User:
    """Create a test user."""
    return await make_user(db_session, "test@spare.finance")


@pytest_asyncio.fixture(scope="function")
async def other_user(db_session) -> User:
    """A second user, for ownership checks."""
    return await make_user(db_session, "other@spare.finance")


@pytest_asyncio.fixture(scope="function")
async def admin_user(db_session) -> User:
    """Create an admin user."""
    return await make_user(db_session, "admin@spare.finance", "AdminPassword123!", is_admin=True)


@pytest.fixture(scope="function")
def auth_headers(test_user) -> dict:
    """Authorization headers for regular user."""
    return headers_for(test_user)


@pytest.fixture(scope="function")
def other_headers(other_user) -> dict:
    return headers_for(other_user)


@pytest.fixture(scope="function")
def admin_headers(admin_user) -> dict:
    """Authorization headers for admin user."""
    return headers_for(admin_user)


# ==================== Ledger Fixtures ====================


@pytest_asyncio.fixture(scope="function")
async def checking_account(db_session, test_user) -> Account:
    account = Account(
        user_id=test_user.id,
        name="Checking",
        type="checking",
        initial_balance=Decimal("1000.00"),
        currency="USD",
    )
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest_asyncio.fixture(scope="function")
async def savings_account(db_session, test_user) -> Account:
    account = Account(
        user_id=test_user.id,
        name="Savings",
        type="savings",
        initial_balance=Decimal("0"),
        currency="USD",
    )
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest_asyncio.fixture(scope="function")
async def groceries(db_session, test_user) -> Category:
    """User-owned expense category."""
    group = CategoryGroup(user_id=test_user.id, name="Living", type="expense")
    db_session.add(group)
    await db_session.flush()
    category = Category(group_id=group.id, user_id=test_user.id, name="Groceries")
    db_session.add(category)
    await db_session.commit()
    await db_session.refresh(category)
    return category


# ==================== Helpers ====================


class TestHelpers:
    """Helper methods for tests."""

    @staticmethod
    def last_code(sender: EmailSender) -> str:
        """6-digit code from the most recent email."""
        return sender.sent[-1].body.rsplit(" ", 1)[-1]

    @staticmethod
    def expense(account_id, amount: str, on: date, description: str = "Coffee", **extra) -> dict:
        body = {
            "account_id": str(account_id),
            "type": "expense",
            "amount": amount,
            "date": on.isoformat(),
            "description": description,
        }
        body.update(extra)
        return body


@pytest.fixture(scope="function")
def helpers() -> TestHelpers:
    """Provide test helpers."""
    return TestHelpers()
