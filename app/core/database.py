"""Database connection and session management."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings


def _engine_options(url: str) -> dict[str, Any]:
    """Pool options for server databases; SQLite uses its default pool."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    **_engine_options(settings.DATABASE_URL),
)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_db_session(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session for workers and scripts (context manager style).

    Uncommitted work is rolled back when the block raises.

    Usage:
        async with get_db_session() as session:
            ...
    """
    async with (session_factory or async_session_maker)() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped database session.

    Usage:
        @router.get("/patients")
        async def list_patients(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_maker() as session:
        yield session


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """
    Session factory registered on the application.

    Used by code that needs several independent sessions in one request
    (parallel aggregations) and by middleware, which has no access to
    dependency injection.
    """
    return getattr(request.app.state, "session_factory", async_session_maker)
