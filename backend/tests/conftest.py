"""Pytest fixtures for backend tests."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from loginwatch.core.config import Settings
from loginwatch.db.base import Base
from loginwatch.models.login_attempt import FailureReason, LoginAttempt

# In-memory SQLite shared through a single connection, recreated per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the default heuristics and an in-memory database."""
    return Settings(DATABASE_URL_OVERRIDE=TEST_DATABASE_URL, STATS_TIMEZONE="UTC")


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine with a fresh schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_attempt():
    """Factory for LoginAttempt rows with sensible defaults."""

    def _make(
        email: str = "student@example.com",
        success: bool = False,
        attempted_at: datetime | None = None,
        ip_address: str = "203.0.113.10",
        is_suspicious: bool = False,
        suspicious_reasons: list[str] | None = None,
        **kwargs,
    ) -> LoginAttempt:
        return LoginAttempt(
            email=email,
            success=success,
            failure_reason=None if success else FailureReason.INVALID_CREDENTIALS,
            ip_address=ip_address,
            user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/120.0",
            attempted_at=attempted_at or datetime.now(UTC) - timedelta(minutes=1),
            is_suspicious=is_suspicious,
            suspicious_reasons=suspicious_reasons or [],
            **kwargs,
        )

    return _make
