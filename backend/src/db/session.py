"""Async SQLAlchemy engine and session factory."""
from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import Settings


def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the process-wide async engine.

    Called once from the application lifespan; the engine owns the connection pool
    and is disposed at shutdown.
    """
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite":
        # SQLite pools are chosen by the dialect and reject QueuePool sizing args
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to the engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Return the session factory for services that need concurrent queries."""
    return request.app.state.services.session_factory


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """
    Yield an async database session.

    Mutating services commit or roll back their own transaction so that cache
    invalidation runs strictly after commit. The trailing commit here only
    closes out read-only work; on error everything still open is rolled back.
    """
    async with get_session_factory(request)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
