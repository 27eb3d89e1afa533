# storefront/database.py

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """
    Owns the async engine and session factory.

    Constructed by the process entry point and passed to the services that need
    it; nothing connects until open() is called.
    """

    def __init__(self, url: str, pool_size: int = 10, max_overflow: int = 20, echo: bool = False):
        self.url = url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    async def open(self) -> None:
        if self.engine is not None:
            return

        if self.is_sqlite:
            self.engine = create_async_engine(
                self.url,
                echo=self.echo,
                connect_args={"timeout": 30},
            )
            self._install_sqlite_locking(self.engine)
        else:
            self.engine = create_async_engine(
                self.url,
                echo=self.echo,
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=30,
                pool_recycle=1800,
                pool_pre_ping=True,
            )

        self._sessionmaker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        logger.info(f"Database engine opened ({self.engine.dialect.name})")

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database engine disposed")
        self.engine = None
        self._sessionmaker = None

    @staticmethod
    def _install_sqlite_locking(engine: AsyncEngine) -> None:
        # SQLite ignores FOR UPDATE; BEGIN IMMEDIATE takes the write lock up
        # front so concurrent checkouts serialize the same way row locks do.
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    def session(self) -> AsyncSession:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not open")
        return self._sessionmaker()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside a single transaction; commits on exit, rolls back on error."""
        async with self.session() as session:
            async with session.begin():
                yield session

    async def create_all(self) -> None:
        """Create every table registered on Base (tests and local development)."""
        from storefront import models  # noqa: F401  registers the mappers

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        from storefront import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
