"""Async SQLAlchemy engine, session factory and declarative Base.

The engine is built on first use rather than at import, so the HTTP app,
Alembic and the unit tests import models without a DATABASE_URL.
"""

import logging
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from crmflow.core.config import Settings, get_settings
from crmflow.domain.exceptions import SqlNotConfiguredException

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class _Database:
    def __init__(self) -> None:
        self.engine: AsyncEngine | None = None
        self.sessions: async_sessionmaker[AsyncSession] | None = None

    def connect(self, settings: Settings) -> None:
        if self.engine is not None or not settings.database_url:
            return
        self.engine = create_async_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            connect_args={"command_timeout": settings.db_command_timeout},
        )
        self.sessions = async_sessionmaker(
            self.engine, expire_on_commit=False, autoflush=False
        )
        logger.info("Database engine created (pool_size=%d)", settings.db_pool_size)

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self.sessions = None


_db = _Database()


def get_engine() -> AsyncEngine:
    get_session_factory()
    return _db.engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for the configured database.

    Raises:
        SqlNotConfiguredException: DATABASE_URL is empty.
    """
    _db.connect(get_settings())
    if _db.sessions is None:
        logger.error("DATABASE_URL is not set; run `alembic upgrade head` once it is")
        raise SqlNotConfiguredException()
    return _db.sessions


def is_configured() -> bool:
    return bool(get_settings().database_url)


async def dispose_engine() -> None:
    await _db.dispose()


async def get_db() -> AsyncIterator[AsyncSession]:
    """Read-only session dependency. Nothing is committed."""
    async with get_session_factory()() as session:
        yield session
