"""Async database session configuration for the checkout service.

Uses SQLAlchemy 2.0 async engine with the asyncpg driver. Every request gets
its own session through ``get_db``; there is no transaction coordination
across requests.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from filtersfast.config import APP_DATABASE_URL

# Convert postgresql:// to postgresql+asyncpg:// for async driver
async_url = APP_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

engine = create_async_engine(
    async_url,
    echo=False,
    pool_size=10,
    max_overflow=5,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides an async database session.

    Commits when the request handler returns normally and rolls back if it
    raises, so a validate-then-record sequence inside one handler is atomic.

    Yields:
        AsyncSession bound to the checkout database.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
