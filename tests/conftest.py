"""
GrantMatch Test Configuration and Fixtures
Shared pytest fixtures for all test modules.
"""
import os
import tempfile
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from grantmatch.matching.models import UserMatchPreferences
from grantmatch.matching.retry import RetryPolicy
from grantmatch.models import Base
from tests.fixtures.factories import GrantFactory
from tests.fixtures.fakes import FakeCompletionClient


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create an async SQLite engine for testing."""
    # Use a unique temp file for each test to ensure complete isolation
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()

    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create an async session for seeding test data."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Matching Fixtures
# =============================================================================


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy with the default attempt count and no backoff delay."""
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, timeout=5.0)


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    """Completion client with an empty script; tests add steps."""
    return FakeCompletionClient(label="key-1")


@pytest.fixture
def sample_grants():
    """Five grants due at staggered dates."""
    return [GrantFactory.create(id=f"g{i}", days_until_due=10 * i) for i in range(1, 6)]


@pytest.fixture
def environment_preferences() -> UserMatchPreferences:
    return UserMatchPreferences(issue_areas=["Environment"], preferred_scope="local")


