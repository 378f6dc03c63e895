"""
Role-chain cache consistency across sessions sharing one cache.

Uses a file-backed SQLite database so writer and reader run on separate
connections and only see each other's committed rows.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from serenity_rbac.access import AccessControl
from serenity_rbac.core.cache import MemoryCacheBackend, PermissionCache
from serenity_rbac.core.config import RBACSettings, Settings
from serenity_rbac.models import Base


@pytest.fixture
def shared_settings() -> Settings:
    # Readers must not write while the writer holds SQLite's write lock
    return Settings(environment="testing", rbac=RBACSettings(record_usage=False))


@pytest.fixture
def shared_cache() -> PermissionCache:
    return PermissionCache(MemoryCacheBackend(default_ttl=300, prefix="shared:"))


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rbac.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def committed_roles(session_factory, shared_cache, shared_settings):
    """admin grants report:read; manager inherits it. Committed."""
    async with session_factory() as session:
        access = AccessControl(session, cache=shared_cache, settings=shared_settings)
        await access.create_permission({"resource": "report", "action": "read", "category": "analytics"})
        await access.create_role({
            "name": "admin", "category": "administrative", "level": 90, "permissions": ["report:read"],
        })
        await access.create_role({"name": "manager", "category": "management", "parent_role": "admin"})
        await session.commit()


async def authorize_fresh(session_factory, cache, settings, role: str, code: str) -> bool:
    async with session_factory() as session:
        access = AccessControl(session, cache=cache, settings=settings)
        return (await access.authorize([role], code)).granted


@pytest.mark.asyncio
async def test_committed_denial_not_served_from_cache(
    session_factory, shared_cache, shared_settings, committed_roles,
):
    async with session_factory() as writer_db, session_factory() as reader_db:
        writer = AccessControl(writer_db, cache=shared_cache, settings=shared_settings)
        reader = AccessControl(reader_db, cache=shared_cache, settings=shared_settings)

        await writer.deny_permission_on_role("manager", "report:read")

        # The writer sees its own denial; the reader still sees committed rows
        assert (await writer.authorize(["manager"], "report:read")).granted is False
        assert (await reader.authorize(["manager"], "report:read")).granted is True
        await reader_db.commit()

        await writer_db.commit()

    assert await authorize_fresh(
        session_factory, shared_cache, shared_settings, "manager", "report:read",
    ) is False


@pytest.mark.asyncio
async def test_rolled_back_change_not_served_from_cache(
    session_factory, shared_cache, shared_settings, committed_roles,
):
    async with session_factory() as writer_db:
        writer = AccessControl(writer_db, cache=shared_cache, settings=shared_settings)

        await writer.remove_permission_from_role("admin", "report:read")
        assert (await writer.authorize(["manager"], "report:read")).granted is False

        await writer_db.rollback()

    assert await authorize_fresh(
        session_factory, shared_cache, shared_settings, "manager", "report:read",
    ) is True
