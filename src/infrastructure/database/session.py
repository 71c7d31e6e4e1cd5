"""Engine, ambient session factory and request transactions.

Collection managers are handed an ``async_sessionmaker``: each operation
called without ``tx`` opens its own short session from it and commits before
returning. Code that needs several operations in one transaction opens a
session with ``get_async_session`` and passes it as ``tx``.

The process keeps one engine, created on first use from ``DatabaseConfig``
and disposed by ``close_database`` at shutdown.
"""

import threading
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.core.config import DatabaseConfig, get_settings
from src.infrastructure.constants import COMMAND_TIMEOUT_SECONDS, POOL_RECYCLE_SECONDS


def create_database_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the asyncpg engine described by ``DatabaseConfig``.

    Args:
        database_url: Overrides ``database_config.database_url``.
    """
    config: DatabaseConfig = get_settings().database_config
    engine = create_async_engine(
        database_url or config.database_url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_pre_ping=config.pool_pre_ping,
        pool_recycle=POOL_RECYCLE_SECONDS,
        echo=config.echo,
        connect_args={
            "server_settings": {"jit": "off"},
            "command_timeout": COMMAND_TIMEOUT_SECONDS,
        },
    )
    logger.info(
        "Database engine ready - pool_size: {}, max_overflow: {}",
        config.pool_size,
        config.max_overflow,
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the ambient session factory for collection managers.

    Records returned by a manager outlive its session, so objects are not
    expired on commit.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class _Store:
    """Lazily created engine and session factory shared by the process."""

    def __init__(self) -> None:
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self._lock = threading.Lock()

    def open(self) -> async_sessionmaker[AsyncSession]:
        """Create the engine and factory on first use and return the factory."""
        factory = self.session_factory
        if factory is not None:
            return factory
        with self._lock:
            if self.session_factory is None:
                self.engine = create_database_engine()
                self.session_factory = create_session_factory(self.engine)
            return self.session_factory

    def get_engine(self) -> AsyncEngine:
        self.open()
        assert self.engine is not None
        return self.engine

    async def close(self) -> None:
        engine = self.engine
        self.reset()
        if engine is not None:
            await engine.dispose()
            logger.info("Database engine disposed")

    def reset(self) -> None:
        """Forget the engine without disposing it (tests)."""
        self.engine = None
        self.session_factory = None


_store = _Store()


def get_engine() -> AsyncEngine:
    """Return the process engine, creating it if needed."""
    return _store.get_engine()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide ambient session factory."""
    return _store.open()


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Open a session whose work commits or rolls back as a unit.

    Example:
        async with get_async_session() as tx:
            record = await feedback.get_by_id(feedback_id, tx=tx)
            record.description = "Updated"
            await feedback.update(record, tx=tx)
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            logger.debug("Transaction rolled back")
            raise
        await session.commit()
        logger.debug("Transaction committed")


async def close_database() -> None:
    """Dispose the process engine; call once at shutdown."""
    await _store.close()


async def check_database_connection() -> tuple[bool, str | None]:
    """Run ``SELECT 1`` against the process engine.

    Returns:
        tuple[bool, str | None]: Reachability and, when unreachable, the
            driver's error message.
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return False, str(e)
    return True, None
