"""
Database setup for the Exchanger marketplace.

This module provides an asynchronous SQLAlchemy engine, a cached session
factory and helpers for creating the database schema programmatically in
development and testing.

The application targets PostgreSQL (``asyncpg``) in production and SQLite
(``aiosqlite``) for local development and tests. One ``AsyncSession`` is
used per request: everything a request writes is committed together or
rolled back together, which is what keeps the listing and offer stores in
step when an offer transition touches several rows.
"""
from __future__ import annotations

import contextlib
import logging
from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings
from .errors import StorageError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):  # type: ignore[call-arg]
    """Base class for declarative SQLAlchemy models.

    All ORM models inherit from this class. See ``exchanger/core/models.py``
    for the actual model definitions.
    """

    pass


def _create_engine(db_url: str, echo: bool) -> AsyncEngine:
    """Instantiate a new async engine from the given URL."""
    return create_async_engine(db_url, echo=echo)


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Return a cached asynchronous SQLAlchemy engine.

    The database URL is read from the current settings. Tests override
    ``DATABASE_URL`` and call :func:`reset_engine` to get a fresh engine.
    """
    settings = get_settings()
    return _create_engine(settings.database_url, echo=settings.env == "dev")


@lru_cache(maxsize=1)
def get_async_session_factory() -> async_sessionmaker:
    """Return a cached session factory bound to the current engine."""
    return async_sessionmaker(
        bind=get_engine(), expire_on_commit=False, class_=AsyncSession
    )


async def reset_engine() -> None:
    """Dispose the cached engine and forget the cached factory."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
    get_engine.cache_clear()
    get_async_session_factory.cache_clear()


@contextlib.asynccontextmanager
async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Asynchronous context manager that yields a database session.

    The session is committed when the block exits normally and rolled
    back on any exception. SQLAlchemy failures are re-raised as
    :class:`StorageError` so callers only ever see domain errors.

    Example:

    >>> async with get_db_session() as session:
    ...     listing = await session.get(Listing, 1)
    """
    async with get_async_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.error("Database operation failed: %s", exc)
            raise StorageError("Storage operation failed") from exc
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db_schema() -> None:
    """Create all tables in the database.

    Used in development and testing. It imports the models module to
    ensure all metadata is registered on the declarative base and then
    creates all tables.
    """
    from . import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
