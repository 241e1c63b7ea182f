"""
TrailMemo Backend — Database Engine & Session Factory
=======================================================

What:  Async SQLAlchemy engine construction, session factory, and ORM Base.
Why:   Centralizes connection logic; the engine itself is owned by the
       AppContext so tests can build their own against SQLite.
How:   build_engine() applies pool settings for PostgreSQL (asyncpg) and a
       per-statement command timeout; other dialects get library defaults.

Connection Pooling Strategy (PostgreSQL):
    pool_size=20 / max_overflow=10 → at most 30 connections
    pool_pre_ping                  → stale connections are detected before use
    pool_recycle=3600              → connections are recycled hourly
    command_timeout                → a hung statement fails instead of leaking
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from trailmemo.config import Settings


class Base(DeclarativeBase):
    """Base class for all ORM models (shared metadata for Alembic)."""
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for settings.database_url."""
    kwargs = {
        "echo": settings.log_level == "DEBUG",
        "pool_pre_ping": settings.db_pool_pre_ping,
    }
    if settings.database_url.startswith("postgresql"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=3600,
            connect_args={"command_timeout": settings.db_command_timeout},
        )
    return create_async_engine(settings.database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to `engine`.

    expire_on_commit=False: response models are built from ORM objects after
    the request's commit; expiring them would trigger lazy loads outside the
    session.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
