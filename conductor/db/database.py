"""
Persistence engine.

One async engine per process, opened by the app lifespan.  Services take a
short-lived session from ``new_session()`` for each unit of work and commit
their own writes; no route holds a request-scoped session.

The ORM models own the schema: ``init_db`` creates missing tables.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from conductor.config import settings

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./conductor.db"


class Base(DeclarativeBase):
    """Declarative base for every Conductor table."""


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def engine_options(url: str) -> dict[str, Any]:
    """Driver-specific ``create_async_engine`` options.

    An in-memory SQLite database exists per connection, so it is pinned to a
    single shared connection.
    """
    options: dict[str, Any] = {"echo": settings.debug}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
    return options


def bind(engine: AsyncEngine) -> None:
    """Point ``new_session()`` at *engine*."""
    global _engine, _session_factory
    _engine = engine
    _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)


async def init_db(url: Optional[str] = None) -> None:
    """Open the engine and create any missing tables."""
    url = url or settings.database_url
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"CONDUCTOR_DATABASE_URL not set, using {url}")
    logger.info(f"Opening database {make_url(url).render_as_string(hide_password=True)}")

    engine = create_async_engine(url, **engine_options(url))

    from conductor.db import models  # noqa: F401  registers the tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    bind(engine)
    logger.info(f"Database ready ({len(Base.metadata.tables)} tables)")


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None


def new_session() -> AsyncSession:
    """A fresh session for one unit of work; use as ``async with new_session() as s``."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized; init_db() runs in the app lifespan")
    return _session_factory()
