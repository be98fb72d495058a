"""Pytest configuration and fixtures for Crowd Balance tests.

Each test gets its own SQLite database file, so API requests, service calls
and sweeper cycles (which open their own sessions) all see the same data.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SWEEPER_ENABLED", "false")

from datetime import datetime, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from crowd_balance.database import Base, get_db
from crowd_balance.main import app
from crowd_balance.models.location import Location
from crowd_balance.models.user import User, UserType
from crowd_balance.routers.locations import get_sweeper
from crowd_balance.services.retention import RetentionSweeper


class FakeClock:
    """Controllable replacement for utcnow()."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a fresh database with every table."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crowd.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for service-level tests; the test commits what it needs."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 14, 12, 0, 0))


@pytest.fixture
def sweeper(session_factory, clock) -> RetentionSweeper:
    return RetentionSweeper(
        session_factory,
        horizon=timedelta(minutes=60),
        interval=300,
        clock=clock,
    )


@pytest_asyncio.fixture
async def client(session_factory, sweeper) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, one committed session per request."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sweeper] = lambda: sweeper

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def hall_a(session_factory) -> Location:
    async with session_factory() as session:
        location = Location(name="Hall A", capacity=100, last_updated=datetime(2026, 3, 14, 9, 0))
        session.add(location)
        await session.commit()
        return location


@pytest_asyncio.fixture
async def hall_b(session_factory) -> Location:
    async with session_factory() as session:
        location = Location(name="Hall B", capacity=250, last_updated=datetime(2026, 3, 14, 9, 0))
        session.add(location)
        await session.commit()
        return location


@pytest_asyncio.fixture
async def organizers(session_factory) -> list[User]:
    async with session_factory() as session:
        users = [
            User(
                email="amal@example.com",
                name="Amal",
                user_type=UserType.ORGANIZER.value,
                phone="0771234567",
                assigned_hall="Hall A",
            ),
            User(
                email="bimal@example.com",
                name="Bimal",
                user_type=UserType.ORGANIZER.value,
                phone="0777654321",
                assigned_hall="Hall B",
            ),
            User(
                email="panel@example.com",
                name="Panel",
                user_type=UserType.PANEL.value,
                assigned_hall="Hall A",
            ),
        ]
        session.add_all(users)
        await session.commit()
        return users


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "sweeper: Retention sweeper tests")
