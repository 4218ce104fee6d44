"""Async SQLAlchemy engine and session factory construction."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from dreamauth.core.settings import DatabaseSettings
from dreamauth.db.base import BaseEntity


def create_engine(settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine for the identity store."""
    url = settings.async_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.echo)
    return create_async_engine(
        url,
        echo=settings.echo,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory shared by all requests."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create missing tables; deployments normally run Alembic instead."""
    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)
