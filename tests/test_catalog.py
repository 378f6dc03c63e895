"""
Tests for the permission catalog.
"""

import pytest

from serenity_rbac.core.errors import ConflictError, ErrorCode, NotFoundError, RBACValidationError
from serenity_rbac.core.hooks import HookEvent
from serenity_rbac.models import PermissionScope, RiskLevel
from serenity_rbac.services.catalog import calculate_risk_level


@pytest.mark.parametrize(
    "resource,action,expected",
    [
        ("system", "delete", RiskLevel.CRITICAL),
        ("billing", "manage", RiskLevel.CRITICAL),
        ("user_management", "approve", RiskLevel.HIGH),
        ("client", "create", RiskLevel.MEDIUM),
        ("content", "publish", RiskLevel.MEDIUM),
        ("user", "read", RiskLevel.LOW),
        ("user", "delete", RiskLevel.LOW),
    ],
)
def test_calculate_risk_level(resource, action, expected):
    assert calculate_risk_level(resource, action) == expected


@pytest.mark.asyncio
async def test_create_permission_derives_defaults(catalog):
    """Code, display name, risk and scope default from resource/action."""
    permission = await catalog.create_permission({
        "resource": "Client",
        "action": "create",
        "category": "workflow",
    })

    assert permission.code == "client:create"
    assert permission.resource == "client"
    assert permission.display_name == "Create Client"
    assert permission.risk_level == RiskLevel.MEDIUM
    assert permission.scope == PermissionScope.ORGANIZATION
    assert permission.is_active is True
    assert permission.usage_count == 0


@pytest.mark.asyncio
async def test_create_permission_duplicate_code(catalog, permission_factory):
    await permission_factory.create(resource="report", action="read")

    with pytest.raises(ConflictError) as exc:
        await catalog.create_permission({"resource": "report", "action": "read", "category": "analytics"})

    assert exc.value.code == ErrorCode.PERMISSION_EXISTS
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_create_permission_invalid_input(catalog):
    with pytest.raises(RBACValidationError) as exc:
        await catalog.create_permission({"resource": "report", "action": "destroy", "category": "analytics"})

    assert exc.value.details["errors"]


@pytest.mark.asyncio
async def test_create_permission_unknown_dependency(catalog):
    with pytest.raises(NotFoundError) as exc:
        await catalog.create_permission({
            "resource": "report",
            "action": "update",
            "category": "analytics",
            "dependencies": ["report:read"],
        })

    assert exc.value.code == ErrorCode.PERMISSION_NOT_FOUND
    assert await catalog.get_by_code("report:update") is None


@pytest.mark.asyncio
async def test_get_many_reports_missing(catalog, report_permissions):
    resolved = await catalog.get_many(["report:read", "REPORT:READ", "report:create"])
    assert [p.code for p in resolved] == ["report:read", "report:create"]

    with pytest.raises(NotFoundError) as exc:
        await catalog.get_many(["report:read", "report:export", "ghost:read"])
    assert exc.value.details["missing"] == ["report:export", "ghost:read"]


@pytest.mark.asyncio
async def test_check_compatibility_conflict(catalog, permission_factory):
    """Conflicts are found whichever side declared them."""
    approve = await permission_factory.create(resource="invoice", action="approve", category="billing")
    create = await permission_factory.create(
        resource="invoice",
        action="create",
        category="billing",
        conflicts=["invoice:approve"],
    )

    result = await catalog.check_compatibility(approve, [create.id])
    assert result.compatible is False
    assert result.conflicts == [{"id": str(create.id), "code": "invoice:create"}]

    result = await catalog.check_compatibility(create, [approve.id])
    assert result.compatible is False
    assert result.conflicts[0]["code"] == "invoice:approve"


@pytest.mark.asyncio
async def test_check_compatibility_missing_dependency(catalog, permission_factory):
    read = await permission_factory.create(resource="job", action="read", category="workflow")
    update = await permission_factory.create(
        resource="job",
        action="update",
        category="workflow",
        dependencies=["job:read"],
    )

    result = await catalog.check_compatibility(update, [])
    assert result.compatible is False
    assert result.missing_dependencies == [{"id": str(read.id), "code": "job:read"}]

    result = await catalog.check_compatibility(update, [read.id])
    assert result.compatible is True
    assert result.to_dict() == {"compatible": True}


@pytest.mark.asyncio
async def test_check_conditions(catalog, permission_factory):
    permission = await permission_factory.create(
        resource="report",
        action="execute",
        conditions=[{"field": "department", "operator": "in", "value": ["finance", "ops"]}],
    )

    assert catalog.check_conditions(permission, {"department": "finance"}) is True
    assert catalog.check_conditions(permission, {"department": "sales"}) is False
    assert catalog.check_conditions(permission, None) is False


@pytest.mark.asyncio
async def test_search_filters(catalog, permission_factory, report_permissions):
    await permission_factory.create(resource="job", action="read", category="workflow", tags=["hiring"])
    await catalog.deprecate("report:delete")

    page = await catalog.search({"resources": ["report"]})
    assert [p.code for p in page.items] == ["report:create", "report:read", "report:update"]
    assert page.total == 3
    assert page.has_more is False

    page = await catalog.search({"resources": ["report"], "include_deprecated": True, "limit": 2})
    assert page.total == 4
    assert page.has_more is True

    page = await catalog.search({"tags": ["hiring"]})
    assert [p.code for p in page.items] == ["job:read"]

    page = await catalog.search({"text": "job"})
    assert [p.code for p in page.items] == ["job:read"]


@pytest.mark.asyncio
async def test_deprecate_triggers_hook(catalog, hooks, report_permissions):
    seen = []

    @hooks.on(HookEvent.PERMISSION_DEPRECATED)
    async def record(permission, replacement):
        seen.append((permission.code, replacement.code))

    permission = await catalog.deprecate("report:delete", replacement="report:update")

    assert permission.is_deprecated is True
    assert permission.deprecation_date is not None
    assert permission.replaced_by_id == report_permissions["report:update"].id
    assert seen == [("report:delete", "report:update")]


@pytest.mark.asyncio
async def test_find_by_resource_skips_inactive(catalog, report_permissions):
    await catalog.deactivate("report:delete")

    codes = [p.code for p in await catalog.find_by_resource("report")]
    assert "report:delete" not in codes
    assert len(await catalog.find_by_resource("report", active_only=False)) == 4
