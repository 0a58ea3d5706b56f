"""
Database Connection Module for Probemon

Manages the async SQLAlchemy engine, the session factory and table
creation for the results database (SQLite through aiosqlite).
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import NullPool

from config.settings import DatabaseSettings
from database.models import Base
from exceptions import DatabaseConnectionError, DatabaseQueryError
from utils.logger import get_logger


logger = get_logger("Database")


class DatabaseManager:
    """
    Database Manager Class

    Owns the engine and session factory of the results database.

    Attributes:
        engine: SQLAlchemy async engine
        session_factory: Async session maker
        is_connected: Connection status flag
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        """
        Initialize database manager.

        Args:
            settings: Database settings section
        """
        self._settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.is_connected: bool = False
        self._lock = asyncio.Lock()

    @property
    def url(self) -> str:
        return self._settings.url

    async def initialize(self) -> None:
        """
        Create the engine, verify the connection and create missing tables.

        Raises:
            DatabaseConnectionError: If the database cannot be opened
        """
        async with self._lock:
            if self.is_connected:
                logger.warning("Database already connected")
                return

            try:
                logger.info(f"Connecting to database {self.url}")

                self._settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)

                self.engine = create_async_engine(self.url, **self._get_engine_kwargs())

                self.session_factory = async_sessionmaker(
                    bind=self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False
                )

                self._setup_event_listeners()
                await self._test_connection()
                await self.create_tables()

                self.is_connected = True
                logger.info("✓ Database connection established")

            except (SQLAlchemyError, OSError) as e:
                error_msg = f"Failed to connect to database: {e}"
                logger.error(error_msg)
                if self.engine is not None:
                    await self.engine.dispose()
                    self.engine = None
                raise DatabaseConnectionError(
                    message=error_msg,
                    database=str(self._settings.sqlite_path),
                    cause=e
                ) from e

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        """
        Get engine configuration kwargs based on settings.

        Returns:
            Dictionary of engine configuration options
        """
        # SQLite files need no pool; every session opens its own connection
        return {
            "echo": self._settings.echo,
            "poolclass": NullPool,
        }

    async def _test_connection(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    def _setup_event_listeners(self) -> None:
        """Set up SQLAlchemy event listeners."""

        @event.listens_for(self.engine.sync_engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            logger.debug("New database connection established")

    async def create_tables(self) -> None:
        """Create all tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug("Database tables ensured")

    async def close(self) -> None:
        """
        Close database connection.

        Disposes of the engine and cleans up resources.
        """
        async with self._lock:
            if not self.is_connected:
                return

            if self.engine:
                await self.engine.dispose()
                self.engine = None

            self.session_factory = None
            self.is_connected = False
            logger.info("Database disconnected")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for database sessions.

        Provides a session that is automatically committed on success
        or rolled back on failure.

        Yields:
            AsyncSession: Database session

        Raises:
            DatabaseConnectionError: If not connected
            DatabaseQueryError: If query fails
        """
        if not self.is_connected or not self.session_factory:
            raise DatabaseConnectionError("Database not connected")

        session = self.session_factory()

        try:
            yield session
            await session.commit()

        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise DatabaseQueryError(
                message=str(e),
                cause=e
            ) from e

        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.

        Returns:
            True if connection is alive, False otherwise
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (DatabaseConnectionError, DatabaseQueryError) as e:
            logger.error(f"Database connection check failed: {e}")
            return False
