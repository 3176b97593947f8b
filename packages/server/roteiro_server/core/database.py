"""
Database connection and session management.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from roteiro_server.core.config import get_settings

settings = get_settings()


def _engine_kwargs(database_url: str) -> dict:
    kwargs: dict = {"echo": settings.debug, "future": True}
    if database_url.startswith("postgresql+asyncpg"):
        kwargs["pool_timeout"] = settings.database_pool_timeout_seconds
        kwargs["connect_args"] = {
            "timeout": settings.database_pool_timeout_seconds,
            "command_timeout": settings.database_statement_timeout_seconds,
        }
    return kwargs


engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db():
    """Create all tables (development only)."""
    import roteiro_server.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions (one transaction per request)."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context():
    """Context manager for use outside of FastAPI request lifecycle."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
