"""
Test fixtures for the Bank Ledger test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - ledger / card_service: Components built the way main.py builds them,
    with a notifier that drops every event
  - client: Async HTTP test client (unauthenticated), reserve provisioned
  - authenticated_client: Test client with a pre-registered MEMBER and token
  - admin_client: Test client with a pre-registered ADMIN and token
  - member_factory: Signs up extra members and returns their auth headers

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database — no state leaks between tests.
  - We override FastAPI's get_db dependency to inject our test session,
    so the application code works exactly as it does in production.
  - ASGITransport doesn't run the app lifespan, so the client fixture
    provisions the reserve account itself.
  - The admin_client fixture creates an admin by signing up normally and
    then promoting it the way an operator would — admins are provisioned by
    an operator, never self-service.
"""

import os
from dataclasses import dataclass
from datetime import timedelta

from cryptography.fernet import Fernet

# Settings are read at import time; configure before importing the app
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("CARD_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.pop("WEBHOOK_URL", None)

import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402

from bank_ledger.database import Base, get_db  # noqa: E402
from bank_ledger.main import app  # noqa: E402
from bank_ledger.notifications import WebhookNotifier  # noqa: E402
from bank_ledger.services import account_service  # noqa: E402
from bank_ledger.services.card_service import CardService  # noqa: E402
from bank_ledger.services.ledger_service import LedgerEngine  # noqa: E402


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

RESERVE_USERNAME = "CentralBank"
RESERVE_BALANCE_CENTS = 99_999_999_999
ONBOARDING_CREDIT_CENTS = 100_000


@dataclass
class Member:
    """A signed-up member as seen by the tests."""
    username: str
    password: str
    account_id: str
    account_number: str
    token: str

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"}


async def signup_member(client, username: str, password: str = "SecurePass123!") -> Member:
    response = await client.post(
        "/auth/signup",
        json={
            "username": username,
            "email": f"{username.lower()}@example.com",
            "password": password,
        },
    )
    assert response.status_code == 201, f"Signup failed: {response.text}"
    data = response.json()
    return Member(
        username=username,
        password=password,
        account_id=data["account_id"],
        account_number=data["account_number"],
        token=data["token"],
    )


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def notifier():
    """A notifier with no URL: every event is dropped."""
    return WebhookNotifier(url=None)


@pytest_asyncio.fixture
async def ledger(notifier):
    return LedgerEngine(
        reserve_username=RESERVE_USERNAME,
        reserve_balance_cents=RESERVE_BALANCE_CENTS,
        onboarding_credit_cents=ONBOARDING_CREDIT_CENTS,
        notifier=notifier,
    )


@pytest_asyncio.fixture
async def card_service(notifier):
    return CardService(cooldown=timedelta(hours=24), notifier=notifier)


@pytest_asyncio.fixture
async def reserve(ledger, db_session):
    """The provisioned reserve account."""
    return await ledger.bootstrap(db_session)


@pytest_asyncio.fixture
async def client(session_factory):
    """
    Async HTTP test client with the test database injected.

    This overrides the get_db dependency so all requests hit the
    in-memory test database instead of the real one, and provisions the
    reserve account the way the app lifespan would.
    """
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with session_factory() as session:
        await app.state.ledger.bootstrap(session)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def member_factory(client):
    """Sign up additional members: `alice = await member_factory("alice")`."""
    async def _create(username: str, password: str = "SecurePass123!") -> Member:
        return await signup_member(client, username, password)
    return _create


@pytest_asyncio.fixture
async def authenticated_client(client):
    """
    Test client with a pre-registered member and bearer token.

    Signs up a test member via the real signup endpoint, then sets the
    Authorization header on the client for all subsequent requests.
    """
    member = await signup_member(client, "testuser")
    client.headers["Authorization"] = f"Bearer {member.token}"
    return client


@pytest_asyncio.fixture
async def admin_client(client, session_factory):
    """
    Test client with a pre-registered ADMIN and bearer token.

    Creates an account via the normal signup endpoint, then promotes it
    with account_service.promote_to_admin, the function the operator script
    uses. Admin accounts are never self-service.
    """
    admin = await signup_member(client, "admin_user", "AdminPass123!")

    async with session_factory() as session:
        assert await account_service.promote_to_admin(session, admin.username)

    login_response = await client.post(
        "/auth/login",
        json={"username": admin.username, "password": admin.password},
    )
    assert login_response.status_code == 200
    client.headers["Authorization"] = f"Bearer {login_response.json()['token']}"
    return client
