"""Database configuration and async session management."""

from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import settings


def _engine_options(database_url: str) -> dict:
    """Engine keyword arguments for the configured backend."""
    if "sqlite" in database_url:
        # Single shared connection so in-memory databases survive across sessions
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {"pool_pre_ping": True}


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function that yields database sessions.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Alias for FastAPI dependency injection
get_db = get_async_session


def is_postgresql(session: AsyncSession) -> bool:
    """Return True when the session is bound to PostgreSQL."""
    bind = session.bind
    return bind is not None and bind.dialect.name == "postgresql"


async def acquire_transaction_lock(session: AsyncSession, key: str) -> None:
    """
    Take a transaction-scoped advisory lock keyed on `key`.

    The lock is released when the surrounding transaction ends. SQLite has no
    advisory locks; there an empty write takes the database-wide write lock
    instead, which covers every key.
    """
    if is_postgresql(session):
        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
            {"lock_key": key},
        )
    elif session.bind is not None and session.bind.dialect.name == "sqlite":
        await session.execute(text("UPDATE bookings SET version = version WHERE 1 = 0"))


async def check_database(session: AsyncSession) -> bool:
    """Run a trivial query to verify connectivity."""
    await session.execute(text("SELECT 1"))
    return True


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
