"""
Async database engine and session factory.

Usage:
    from database.connection import get_async_session

    async with get_async_session() as session:
        result = await session.execute(select(Slot).where(Slot.id == slot_id))

Transactional writes that span several tables go through
``marketplace.transactions.unit_of_work.UnitOfWork`` instead of raw sessions.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shared.config import get_settings

settings = get_settings()


def build_engine(database_url: str | None = None, **engine_kwargs) -> AsyncEngine:
    """
    Create an async engine.

    Args:
        database_url: Override for settings.DATABASE_URL (tests, scripts)
        **engine_kwargs: Extra keyword arguments for create_async_engine

    Returns:
        AsyncEngine
    """
    engine_kwargs.setdefault("pool_pre_ping", True)
    engine_kwargs.setdefault("echo", settings.DATABASE_ECHO)
    return create_async_engine(database_url or settings.DATABASE_URL, **engine_kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with expire_on_commit disabled (objects stay readable after commit)."""
    return async_sessionmaker(bind=bind, expire_on_commit=False, autoflush=False)


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


@asynccontextmanager
async def get_async_session() -> AsyncIterator[AsyncSession]:
    """
    Yield a session from the default factory and always close it.

    Uncommitted work is rolled back on close.
    """
    async with AsyncSessionLocal() as session:
        yield session
