"""
Database configuration and session management.

Provides:
- Database: an explicitly constructed store client owning the async engine
  and session factory (one per process, injected into request handlers)
- URL conversion from sync driver URLs to their async drivers
- Session context manager with commit/rollback semantics
- Table creation utilities for development and tests
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def get_async_database_url(sync_url: str) -> str:
    """Convert sync database URL to async URL."""
    if sync_url.startswith("sqlite:///"):
        # SQLite async uses aiosqlite
        return sync_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    elif sync_url.startswith("postgresql://"):
        # PostgreSQL async uses asyncpg
        return sync_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif sync_url.startswith("postgres://"):
        return sync_url.replace("postgres://", "postgresql+asyncpg://", 1)
    return sync_url


class Database:
    """
    Store client for the relational database.

    Usage:
        database = Database("sqlite:///./data/plan2tasks.db")
        await database.create_all()

        async with database.session() as session:
            ...

        await database.dispose()
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.url = get_async_database_url(database_url)

        if "sqlite" in self.url:
            # Single shared connection; required for in-memory databases
            self.engine: AsyncEngine = create_async_engine(
                self.url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=echo,
            )
        else:
            self.engine = create_async_engine(
                self.url,
                pool_size=5,  # Maximum number of connections in pool
                pool_recycle=3600,  # Recycle connections after 1 hour
                pool_pre_ping=True,  # Test connections before using them
                echo=echo,
            )

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Async context manager for a unit of work.

        Commits on clean exit and rolls back on exception:
            async with database.session() as session:
                result = await session.execute(select(Connection))

        Yields:
            AsyncSession: SQLAlchemy async database session
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """
        Create all tables.

        Useful for development and testing. In production, use Alembic migrations.
        """
        from plan2tasks.models.base import Base

        self._ensure_sqlite_directory()
        logger.info("Creating database tables...")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    def _ensure_sqlite_directory(self) -> None:
        database = self.engine.url.database
        if self.engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    async def drop_all(self) -> None:
        """
        Drop all tables.

        WARNING: This will delete all data. Primarily for testing.
        """
        from plan2tasks.models.base import Base

        logger.warning("Dropping all database tables...")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("All database tables dropped")

    async def check_connection(self) -> bool:
        """
        Test database connection.

        Returns:
            bool: True if connection successful, False otherwise
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return False

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()
