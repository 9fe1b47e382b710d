"""Async engine, session factory and the request-scoped session dependency.

Sessions never autocommit: every engine method that writes calls
`commit()` or `rollback()` itself, so one HTTP request may span several
independent units of work (the sweeps rely on this).
"""
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import settings

engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)

# expire_on_commit=False: domain objects are mapped from rows, never ORM-attached
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, closed afterwards."""
    async with async_session_factory() as session:
        yield session


async def check_database() -> None:
    """Round-trip to PostgreSQL; raises if the database is unreachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
