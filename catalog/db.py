"""SQLAlchemy 2.x async database setup.

This module defines the async engine and session factory but does not
hard-code any connection credentials.
"""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .models import Base


def unicode_lower(value):
    """``lower()`` for SQLite; the built-in one only folds ASCII letters."""
    return value.lower() if isinstance(value, str) else value


def register_sqlite_functions(bind: AsyncEngine) -> None:
    """Make SQL ``lower()`` agree with ``str.lower()`` on SQLite connections.

    Case-insensitive search lowercases the term in Python and the column in
    SQL, so both sides must fold the same way. Other dialects are left alone.
    """
    if bind.dialect.name != "sqlite":
        return

    @event.listens_for(bind.sync_engine, "connect")
    def _register(dbapi_connection, connection_record):
        dbapi_connection.create_function("lower", 1, unicode_lower, deterministic=True)


engine: AsyncEngine = create_async_engine(settings.db.url, echo=settings.db.echo, future=True)
register_sqlite_functions(engine)

AsyncSessionMaker = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI-friendly async session dependency.

    Usage:
        async def endpoint(session: AsyncSession = Depends(get_session)):
            ...
    """

    async with AsyncSessionMaker() as session:
        yield session


async def create_schema(bind: AsyncEngine | None = None, *, drop_existing: bool = False) -> None:
    """Create the catalog tables (optionally dropping them first)."""
    async with (bind or engine).begin() as conn:
        if drop_existing:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
