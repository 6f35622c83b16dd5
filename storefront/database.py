"""Async SQLAlchemy setup for the storefront.

One engine per process. ``init_db()`` builds it from settings when the
application (or a script, or a test) starts and creates the catalogue and
order tables when ``DB_CREATE_TABLES`` is on. ``close_db()`` disposes it.

PostgreSQL runs through asyncpg with a small connection pool. SQLite
(aiosqlite) gets no pool: each session opens its own connection, which
keeps test databases independent.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from storefront.config import Settings

log = structlog.get_logger(__name__)

POSTGRES_POOL = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_recycle": 300,
}


class Base(DeclarativeBase):
    """Metadata shared by Product, Order and OrderItem."""


_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def _engine_options(settings: Settings) -> dict:
    options: dict = {"echo": settings.db_echo_sql}
    if make_url(settings.database_url).get_backend_name() == "sqlite":
        options["poolclass"] = NullPool
    else:
        options.update(POSTGRES_POOL)
    return options


async def init_db(settings: Settings) -> AsyncEngine:
    """Build the engine and session factory, then the schema if configured."""
    global _engine, _sessions
    engine = create_async_engine(settings.database_url, **_engine_options(settings))
    _engine = engine
    _sessions = async_sessionmaker(engine, expire_on_commit=False)

    if settings.db_create_tables:
        import storefront.models  # noqa: F401  - registers the tables on Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        log.info("database.schema_created", tables=sorted(Base.metadata.tables))

    log.info(
        "database.initialized",
        dialect=engine.dialect.name,
        url=settings.database_url.split("@")[-1],
    )
    return engine


async def close_db() -> None:
    global _engine, _sessions
    if _engine is None:
        return
    await _engine.dispose()
    _engine, _sessions = None, None
    log.info("database.closed")


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("init_db() has not been called")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _sessions is None:
        raise RuntimeError("init_db() has not been called")
    return _sessions


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session.

    The transaction commits when the handler returns and rolls back when it
    raises. Handlers that invalidate cached responses commit on their own
    first.
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        else:
            await session.commit()
