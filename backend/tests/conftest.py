"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

from helpdesk.main import app
from helpdesk.models.base import Base
from helpdesk.models.user import User, UserRole
from helpdesk.db.session import enable_sqlite_foreign_keys, get_db
from helpdesk.core.auth import hash_password
from helpdesk.middleware import rate_limiter as rate_limiter_module
from tests.factories import auth_headers


# Test database URL
# WHY: SQLite in memory keeps the suite free of external services; StaticPool
# makes every session of one test see the same in-memory database.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "password123"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state,
    preventing test pollution and ensuring test isolation.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test engine (for multi-session tests)."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Yields:
        AsyncSession: Database session for the test
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: Requests share the test's session so fixtures and assertions see
    the same rows the API wrote. A successful request commits, like get_db.

    Yields:
        AsyncClient: HTTP client for making test requests
    """

    async def override_get_db():
        """Override database dependency with test session."""
        yield db_session
        await db_session.commit()

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Users & Auth Headers
# ============================================================================


async def _make_user(session: AsyncSession, email: str, name: str, role: UserRole) -> User:
    user = User(
        name=name,
        email=email,
        hashed_password=hash_password(TEST_PASSWORD),
        role=role,
    )
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Plain user: files tickets, sees only their own."""
    return await _make_user(db_session, "user@example.com", "Test User", UserRole.USER)


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Second plain user, for visibility checks."""
    return await _make_user(db_session, "other@example.com", "Other User", UserRole.USER)


@pytest_asyncio.fixture
async def test_agent(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "agent@example.com", "Test Agent", UserRole.AGENT)


@pytest_asyncio.fixture
async def test_admin(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "admin@example.com", "Test Admin", UserRole.ADMIN)


@pytest.fixture
def user_headers(test_user: User) -> dict:
    return auth_headers(test_user)


@pytest.fixture
def agent_headers(test_agent: User) -> dict:
    return auth_headers(test_agent)


@pytest.fixture
def admin_headers(test_admin: User) -> dict:
    return auth_headers(test_admin)


# ============================================================================
# Rate Limiting
# ============================================================================


@pytest.fixture(autouse=True)
def disable_rate_limiting(monkeypatch):
    """
    Disable rate limiting for all tests.

    WHY: Rate limiting needs Redis. Integration tests fire many requests
    rapidly from one client and would hit the limit; the limiter itself is
    tested separately with a mocked Redis.
    """
    mock_result = MagicMock()
    mock_result.allowed = True
    mock_result.remaining = 100
    mock_result.reset_after = 60
    mock_result.limit = 100
    mock_result.headers.return_value = {}

    mock_limiter = MagicMock()
    mock_limiter.check_rate_limit = AsyncMock(return_value=mock_result)

    async def mock_get_rate_limiter():
        return mock_limiter

    monkeypatch.setattr(rate_limiter_module, "get_rate_limiter", mock_get_rate_limiter)
    rate_limiter_module._rate_limiter = None

    yield mock_limiter

    rate_limiter_module._rate_limiter = None
