"""Pytest fixtures for the checkout service tests.

Provides:
- engine / db_session: In-memory SQLite database built from the models
- tax_oracle: Scripted TaxJar endpoint behind httpx.MockTransport
- client: Async HTTP client for the FastAPI app, with ``get_db`` pointed at
  the test database and the tax client and rate limiters injected on
  ``app.state``
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from filtersfast.models import Base
from filtersfast.services.rate_limit import FixedWindowRateLimiter
from tests.helpers import FakeClock, StubTaxOracle

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test, shared across sessions via StaticPool."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session for direct service calls and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def tax_oracle() -> StubTaxOracle:
    return StubTaxOracle()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    tax_oracle: StubTaxOracle,
    clock: FakeClock,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client bound to the FastAPI app.

    ASGITransport does not run the lifespan, so the state it would build is
    injected here instead.
    """
    from filtersfast.database import get_db
    from filtersfast.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    http = tax_oracle.http_client()
    app.dependency_overrides[get_db] = override_get_db
    app.state.tax_client = tax_oracle.tax_client(http)
    app.state.tax_rate_limiter = FixedWindowRateLimiter(50, 60.0, clock=clock)
    app.state.admin_rate_limiter = FixedWindowRateLimiter(100, 60.0, clock=clock)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    del app.state.tax_client
    del app.state.tax_rate_limiter
    del app.state.admin_rate_limiter
    await http.aclose()
