"""Async database session and engine configuration."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from inventory_intel.models import Base


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Build the async engine for a database URL.

    SQLite doesn't support pool_size / max_overflow / pool_pre_ping, and an
    in-memory SQLite database must share one connection across sessions.
    """
    engine_kwargs: dict = {"echo": echo}
    if database_url.startswith("sqlite"):
        if ":memory:" in database_url:
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)

    return create_async_engine(database_url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory handed to every storage component."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_all(engine: AsyncEngine) -> None:
    """Create any missing tables (development and tests only)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
