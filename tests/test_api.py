"""
Tests for the FastAPI integration.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI, Header
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from serenity_rbac.api import register_exception_handlers, require_permission
from serenity_rbac.core.errors import ErrorCode, PolicyViolationError


@pytest_asyncio.fixture
async def client(db: AsyncSession, access) -> AsyncGenerator[AsyncClient, None]:
    """Test client with a minimal app wired to the test session."""
    app = FastAPI()
    register_exception_handlers(app)

    async def get_db():
        yield db

    async def get_principal(x_principal: str = Header(...)) -> str:
        return x_principal

    @app.get("/reports")
    async def list_reports(
        principal: str = Depends(require_permission("report:read", get_principal, get_db)),
    ):
        return {"principal": principal}

    @app.post("/roles/{name}/permissions/{code}")
    async def add_permission(name: str, code: str):
        role = await access.add_permission_to_role(name, code)
        return {"permissions": role.permission_codes}

    @app.get("/boom")
    async def boom():
        raise PolicyViolationError("nope", code=ErrorCode.SYSTEM_ROLE_PROTECTED, details={"role": "root"})

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.mark.asyncio
async def test_error_response_shape(client: AsyncClient):
    response = await client.get("/boom")

    assert response.status_code == 403
    assert response.json() == {
        "error": "SYSTEM_ROLE_PROTECTED",
        "message": "nope",
        "details": {"role": "root"},
    }


@pytest.mark.asyncio
async def test_not_found_maps_to_404(client: AsyncClient, role_factory):
    await role_factory.create(name="support")

    response = await client.post("/roles/support/permissions/ghost:read")

    assert response.status_code == 404
    assert response.json()["error"] == ErrorCode.PERMISSION_NOT_FOUND


@pytest.mark.asyncio
async def test_require_permission(client: AsyncClient, access, role_factory, principal_factory, report_permissions):
    await role_factory.create(name="analyst", permissions=["report:read"])
    await principal_factory.create(email="ana@example.com")
    await principal_factory.create(email="bob@example.com")
    await access.assign_role_to_principal("analyst", "ana@example.com")

    response = await client.get("/reports", headers={"X-Principal": "ana@example.com"})
    assert response.status_code == 200
    assert response.json() == {"principal": "ana@example.com"}

    response = await client.get("/reports", headers={"X-Principal": "bob@example.com"})
    assert response.status_code == 403
    assert response.json()["detail"] == "Permission denied: report:read"
