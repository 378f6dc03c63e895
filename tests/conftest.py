"""
Pytest fixtures for testing.

Provides:
- Async database session with rollback (in-memory SQLite)
- Service fixtures sharing one cache and hook manager
- Factory fixtures for creating permissions, roles and principals
"""

from typing import Any, AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from serenity_rbac.access import AccessControl
from serenity_rbac.core.cache import MemoryCacheBackend, PermissionCache
from serenity_rbac.core.config import RBACSettings, Settings
from serenity_rbac.core.hooks import HookManager
from serenity_rbac.models import Base, Permission, Principal, Role


# Test database URL (SQLite in-memory for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create database session with automatic rollback.

    Each test gets a fresh transaction that's rolled back after.
    """
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings() -> Settings:
    return Settings(environment="testing", rbac=RBACSettings(max_hierarchy_depth=8))


@pytest.fixture
def cache() -> PermissionCache:
    return PermissionCache(MemoryCacheBackend(default_ttl=300, prefix="test:"))


@pytest.fixture
def hooks() -> HookManager:
    return HookManager()


@pytest_asyncio.fixture
async def access(db: AsyncSession, cache, hooks, settings) -> AccessControl:
    return AccessControl(db, cache=cache, hooks=hooks, settings=settings)


@pytest.fixture
def catalog(access: AccessControl):
    return access.catalog


@pytest.fixture
def roles(access: AccessControl):
    return access.roles


@pytest.fixture
def evaluator(access: AccessControl):
    return access.evaluator


# ============ Factory Fixtures ============


class PermissionFactory:
    """Factory for creating catalog permissions."""

    def __init__(self, access: AccessControl):
        self.access = access

    async def create(
        self,
        resource: str = "report",
        action: str = "read",
        category: str = "analytics",
        **data: Any,
    ) -> Permission:
        return await self.access.create_permission({
            "resource": resource,
            "action": action,
            "category": category,
            **data,
        })

    async def create_many(self, codes: list[str], category: str = "workflow") -> list[Permission]:
        """Create ``resource:action`` permissions from their codes."""
        created = []
        for code in codes:
            resource, action = code.split(":")
            created.append(await self.create(resource=resource, action=action, category=category))
        return created


class RoleFactory:
    """Factory for creating roles."""

    def __init__(self, access: AccessControl):
        self.access = access

    async def create(
        self,
        name: str | None = None,
        category: str = "operational",
        **data: Any,
    ) -> Role:
        return await self.access.create_role({
            "name": name or f"role-{uuid4().hex[:8]}",
            "category": category,
            **data,
        })


class PrincipalFactory:
    """Factory for creating principals."""

    def __init__(self, access: AccessControl):
        self.access = access

    async def create(
        self,
        email: str | None = None,
        name: str = "Test User",
        attributes: dict[str, Any] | None = None,
    ) -> Principal:
        email = email or f"test-{uuid4().hex[:8]}@example.com"
        return await self.access.assignments.create_principal(email, name=name, attributes=attributes)


@pytest_asyncio.fixture
async def permission_factory(access: AccessControl) -> PermissionFactory:
    """Fixture that provides PermissionFactory."""
    return PermissionFactory(access)


@pytest_asyncio.fixture
async def role_factory(access: AccessControl) -> RoleFactory:
    """Fixture that provides RoleFactory."""
    return RoleFactory(access)


@pytest_asyncio.fixture
async def principal_factory(access: AccessControl) -> PrincipalFactory:
    """Fixture that provides PrincipalFactory."""
    return PrincipalFactory(access)


@pytest_asyncio.fixture
async def report_permissions(permission_factory: PermissionFactory) -> dict[str, Permission]:
    """report:read/create/update/delete in the analytics category."""
    created = {}
    for action in ("read", "create", "update", "delete"):
        permission = await permission_factory.create(resource="report", action=action)
        created[permission.code] = permission
    return created
