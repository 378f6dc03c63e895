"""
Database engine and session factory.

The library only needs an AsyncSession; callers that already own an
engine can pass their own sessions and ignore this module.
"""

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from serenity_rbac.core.config import DatabaseSettings, get_settings


def create_engine(db_settings: DatabaseSettings | None = None) -> AsyncEngine:
    """Create an async engine from settings."""
    db_settings = db_settings or get_settings().database
    kwargs = {"echo": db_settings.echo}
    # SQLite does not take pool sizing arguments
    if not db_settings.url.startswith("sqlite"):
        kwargs.update(
            pool_size=db_settings.pool_size,
            max_overflow=db_settings.pool_overflow,
            pool_timeout=db_settings.pool_timeout,
        )
    return create_async_engine(db_settings.url, **kwargs)


@lru_cache
def get_engine() -> AsyncEngine:
    """Process-wide engine built from the environment."""
    return create_engine()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Initialize database (create tables)."""
    from serenity_rbac.models import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine | None = None) -> None:
    """Close database connections."""
    engine = engine or get_engine()
    await engine.dispose()
