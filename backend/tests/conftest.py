"""
Test fixtures for CampusMart backend tests.

Provides:
- In-memory SQLite database for isolated testing
- Async test client with proper session management
- Users for each role and a campus delivery zone
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

# JWT secret used to sign test bearer tokens
os.environ.setdefault("JWT_SECRET", "test_jwt_secret_for_campusmart_tests")
# DB settings required by Settings validation (tests use SQLite in-memory, these are not actually used)
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test")
# Development mode for tests (disables ALLOWED_ORIGINS requirement)
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("GEOFENCE_DEV_BYPASS", "false")
os.environ.setdefault("DELIVERY_VERIFY_RATE_LIMIT", "10/minute")

import pytest
from typing import AsyncGenerator

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from backend.app.core.base import Base
from backend.app.core.limiter import limiter
from backend.app.main import app
from backend.app.api.deps import get_session
from backend.app.models.user import User
from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models import delivery, delivery_location, order  # noqa: F401 - register tables
from backend.tests.helpers import create_user, create_zone


# Test database URL - SQLite in-memory
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test; StaticPool keeps the single connection alive."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Session used by tests to arrange data and inspect results."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.

    Every API request gets its own session, like in production, so tests
    observe committed state only.
    """
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test Data Factories ---

@pytest.fixture
async def customer(test_session: AsyncSession) -> User:
    return await create_user(test_session, "Chisomo Banda", role="customer", phone="+265991234567")


@pytest.fixture
async def other_customer(test_session: AsyncSession) -> User:
    return await create_user(test_session, "Tawonga Phiri", role="customer", phone="+265881112223")


@pytest.fixture
async def staff(test_session: AsyncSession) -> User:
    """Delivery staff member with id 7."""
    return await create_user(test_session, "Kondwani Mwale", role="delivery_staff", user_id=7)


@pytest.fixture
async def other_staff(test_session: AsyncSession) -> User:
    return await create_user(test_session, "Thoko Gondwe", role="delivery_staff")


@pytest.fixture
async def admin(test_session: AsyncSession) -> User:
    return await create_user(test_session, "Campus Admin", role="admin")


@pytest.fixture
async def campus_zone(test_session: AsyncSession) -> DeliveryZone:
    """Polygon zone around the main campus, fee 500."""
    return await create_zone(test_session, "Main Campus")
