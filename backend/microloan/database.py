"""Async database engine, declarative base and per-request sessions.

The ``Database`` object is created once in the FastAPI lifespan and stored on
``app.state.database``.  Request handlers receive an ``AsyncSession`` through
the ``get_db`` dependency; the session commits when the handler returns and
rolls back when it raises.
"""

import logging
from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from microloan.services.errors import PersistenceUnavailableError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Database:
    """Owns the engine and session factory for one database URL."""

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise PersistenceUnavailableError("Database has not been connected")
        return self._engine

    async def connect(self, *, create_tables: bool = False) -> None:
        """Create the engine and verify the database is reachable."""
        self._engine = create_async_engine(self.url, echo=self.echo, pool_pre_ping=True)
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        try:
            async with self._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                if create_tables:
                    await conn.run_sync(Base.metadata.create_all)
        except (OperationalError, DBAPIError, OSError) as exc:
            logger.error("Database unreachable at startup: %s", exc)
            raise PersistenceUnavailableError("Database connection error", cause=str(exc)) from exc
        logger.info("Database connected")

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database connections closed")
        self._engine = None
        self._session_factory = None

    def session(self) -> AsyncSession:
        if self._session_factory is None:
            raise PersistenceUnavailableError("Database has not been connected")
        return self._session_factory()


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding one session per request."""
    database: Database | None = getattr(request.app.state, "database", None)
    if database is None:
        raise PersistenceUnavailableError("Database is not configured")
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except OperationalError as exc:
            await session.rollback()
            raise PersistenceUnavailableError("Database connection error", cause=str(exc)) from exc
        except Exception:
            await session.rollback()
            raise
