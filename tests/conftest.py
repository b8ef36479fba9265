"""Pytest configuration and fixtures for Podium tests."""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from podium.config.engine import EngineConfig, OddsParams
from podium.models import Base
from tests.factories import CollectingPublisher


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite engine shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def publisher() -> CollectingPublisher:
    """In-memory event publisher."""
    return CollectingPublisher()


@pytest.fixture
def engine_config() -> EngineConfig:
    """Engine defaults with a small, seeded simulation."""
    return EngineConfig(odds=OddsParams(trials=5_000, seed=7))
