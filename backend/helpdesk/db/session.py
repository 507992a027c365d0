"""
Database session management.

WHY: Async database sessions are required for FastAPI's async/await pattern.
Each request gets its own session through get_db, so handlers never share a
module-level connection.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

from helpdesk.core.config import settings


logger = logging.getLogger(__name__)


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """
    Turn on foreign key enforcement for every SQLite connection.

    WHY: SQLite ignores ON DELETE rules unless the pragma is set per
    connection; PostgreSQL enforces them always.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    WHY: Pool sizing only applies to server databases; SQLite uses its own
    pool class and rejects pool_size.
    """
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
        enable_sqlite_foreign_keys(engine)
        return engine

    # WHY: pool_pre_ping ensures stale connections are recycled
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


engine = build_engine(settings.async_database_url, echo=settings.DEBUG)

# Create session factory
# WHY: expire_on_commit=False prevents lazy-loading issues after commit.
# autoflush=False gives explicit control over when SQL is emitted.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    WHY: One session per request; the whole request is one transaction,
    committed when the handler returns and rolled back if it raises.

    Yields:
        AsyncSession: Database session for the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """
    Create all tables that don't exist yet.

    WHY: The service owns a small fixed schema; creating it at startup
    keeps a fresh checkout runnable without a migration step.
    """
    from helpdesk.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")
