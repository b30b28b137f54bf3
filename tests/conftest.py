"""
Shared fixtures: fixed clock, in-memory SQLite store, ASGI client.
DATABASE_URL must be set before tastesphere is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tastesphere.database import get_db
from tastesphere.dependencies import get_clock
from tastesphere.main import app
from tastesphere.models import Base
from tastesphere.services import recommendation_service
from tastesphere.services.record_store import RecordStore
from tastesphere.utils.clock import FixedClock

from tests.factories import NOW


@pytest.fixture
def clock():
    """Clock frozen at NOW; tests move it explicitly."""
    return FixedClock(NOW)


@pytest.fixture(autouse=True)
def clear_recommendation_cache():
    recommendation_service._cache_recommendations.clear()
    yield
    recommendation_service._cache_recommendations.clear()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session, clock):
    return RecordStore(session, clock)


@pytest_asyncio.fixture
async def client(session_factory, clock):
    """ASGI client with the database and clock dependencies overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
