"""Engine and session lifecycle for the donation ledger database."""

import os
import logging
from typing import Any, AsyncGenerator, Dict, Optional
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./donations.db"

# Async driver to use for each plain URL scheme
_ASYNC_SCHEMES = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
}

# Process-wide engine owned by the HTTP app lifespan
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_database_url(database_url: Optional[str] = None) -> str:
    """Pick the ledger database URL.

    An explicit URL wins over DATABASE_URL, which wins over the local SQLite
    default. Plain PostgreSQL schemes are switched to the asyncpg driver.
    """
    url = database_url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL
    for scheme, async_scheme in _ASYNC_SCHEMES.items():
        if url.startswith(scheme):
            return async_scheme + url[len(scheme):]
    return url


def create_async_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> AsyncEngine:
    """
    Build an async engine for the ledger.

    Args:
        database_url: Connection URL; resolved with get_database_url().
        echo: Log every SQL statement.
        pool_size: Pooled connections kept open (server databases only).
        max_overflow: Extra connections allowed under load (server databases only).

    Returns:
        AsyncEngine instance.
    """
    url = get_database_url(database_url)
    options: Dict[str, Any] = {"echo": echo}

    if url.startswith("sqlite"):
        # One shared connection, so an in-memory database outlives each session
        options.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        options.update(pool_size=pool_size, max_overflow=max_overflow)

    return sa_create_async_engine(url, **options)


def _make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def _create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Ledger tables are in place.")


def get_async_session_factory(
    engine: Optional[AsyncEngine] = None,
) -> async_sessionmaker[AsyncSession]:
    """
    Return a session factory.

    With an engine, a new factory bound to it. Without one, the process-wide
    factory set up by init_db().

    Raises:
        RuntimeError: If no engine is given and init_db() has not run.
    """
    if engine is not None:
        return _make_session_factory(engine)

    if _session_factory is None:
        raise RuntimeError("Ledger database is not initialized; call init_db() first.")
    return _session_factory


async def init_db(
    database_url: Optional[str] = None,
    echo: bool = False,
    create_tables: bool = True,
) -> None:
    """Open the process-wide engine, creating the schema unless told not to."""
    global _engine, _session_factory

    url = get_database_url(database_url)
    logger.info(f"Connecting to ledger database ({url.split('://', 1)[0]})")

    _engine = create_async_engine(url, echo=echo)
    _session_factory = _make_session_factory(_engine)

    if create_tables:
        await _create_schema(_engine)


async def close_db() -> None:
    """Dispose of the process-wide engine, if one is open."""
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Ledger database connection closed.")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a session from the process-wide factory.

    The session commits when the request handler returns and rolls back if
    it raises.
    """
    async with get_async_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class DatabaseManager:
    """
    Owns one engine for a bounded piece of work, such as a CLI run.

    Example:
        db = DatabaseManager("sqlite+aiosqlite:///./donations.db")
        await db.initialize()
        try:
            async with db.session() as session:
                ...
        finally:
            await db.shutdown()
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        self.database_url = database_url
        self.echo = echo
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager is not initialized; call initialize() first.")
        return self._session_factory

    async def initialize(self, create_tables: bool = True) -> None:
        self._engine = create_async_engine(
            self.database_url,
            echo=self.echo,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
        )
        self._session_factory = _make_session_factory(self._engine)
        if create_tables:
            await _create_schema(self._engine)

    async def shutdown(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """A session that commits on clean exit and rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
