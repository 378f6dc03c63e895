"""
Tests for the role hierarchy service.
"""

from datetime import datetime

import pytest
from sqlalchemy import update

from serenity_rbac.core.errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    PolicyViolationError,
    RBACValidationError,
)
from serenity_rbac.core.hooks import HookEvent
from serenity_rbac.models import Role, RoleScope, RoleType
from serenity_rbac.utils.timezone import UTC


def at(hour: int, day: int = 19) -> datetime:
    """2026-10-<day> at <hour>:00 UTC (the 19th is a Monday)."""
    return datetime(2026, 10, day, hour, tzinfo=UTC)


# ============ Creation ============


@pytest.mark.asyncio
async def test_create_role_defaults(roles, hooks):
    created = []
    hooks.register(HookEvent.ROLE_CREATED, lambda role, parent: _collect(created, role.name))

    role = await roles.create_role({"name": "Support-Agent", "category": "support"})

    assert role.name == "support-agent"
    assert role.display_name == "Support Agent"
    assert role.level == 30
    assert role.scope == RoleScope.ORGANIZATION
    assert role.role_type == RoleType.CUSTOM
    assert role.version == 1
    assert created == ["support-agent"]

    stats = await roles.get_role_statistics(role)
    assert stats.user_count == 0
    assert stats.child_count == 0


async def _collect(bucket: list, value) -> None:
    bucket.append(value)


@pytest.mark.asyncio
async def test_level_clamped_below_parent(role_factory):
    """A child's level always ends up below its parent's."""
    admin = await role_factory.create(name="admin", category="administrative", level=40, scope="tenant")
    manager = await role_factory.create(name="manager", category="management", level=70, parent_role="admin")

    assert manager.level == 39
    assert manager.parent_role_id == admin.id
    assert manager.scope == RoleScope.TENANT


@pytest.mark.asyncio
async def test_create_role_errors(roles, role_factory):
    await role_factory.create(name="viewer", category="guest", level=0)

    with pytest.raises(ConflictError) as exc:
        await roles.create_role({"name": "viewer", "category": "guest"})
    assert exc.value.code == ErrorCode.ROLE_EXISTS

    with pytest.raises(NotFoundError) as exc:
        await roles.create_role({"name": "orphan", "category": "support", "parent_role": "ghost"})
    assert exc.value.code == ErrorCode.PARENT_ROLE_NOT_FOUND

    # Level 0 leaves no room below it
    with pytest.raises(RBACValidationError):
        await roles.create_role({"name": "below-viewer", "category": "guest", "parent_role": "viewer"})

    with pytest.raises(NotFoundError) as exc:
        await roles.create_role({"name": "typo", "category": "support", "permissions": ["ghost:read"]})
    assert exc.value.code == ErrorCode.PERMISSION_NOT_FOUND

    with pytest.raises(RBACValidationError):
        await roles.create_role({
            "name": "both",
            "category": "support",
            "permissions": ["report:read"],
            "denied_permissions": ["report:read"],
        })


@pytest.mark.asyncio
async def test_create_role_rejects_incompatible_allow_list(roles, permission_factory):
    await permission_factory.create(resource="invoice", action="approve", category="billing")
    await permission_factory.create(
        resource="invoice", action="create", category="billing", conflicts=["invoice:approve"],
    )

    with pytest.raises(PolicyViolationError) as exc:
        await roles.create_role({
            "name": "clerk",
            "category": "operational",
            "permissions": ["invoice:create", "invoice:approve"],
        })

    assert exc.value.code == ErrorCode.PERMISSION_INCOMPATIBLE
    assert await roles.find_role("clerk") is None


@pytest.mark.asyncio
async def test_hierarchy_depth_limit(role_factory, settings):
    """Chains longer than RBAC_MAX_HIERARCHY_DEPTH are rejected."""
    parent = await role_factory.create(name="depth-0", level=100)
    for depth in range(1, settings.rbac.max_hierarchy_depth + 1):
        parent = await role_factory.create(name=f"depth-{depth}", parent_role=parent.name)

    with pytest.raises(PolicyViolationError) as exc:
        await role_factory.create(name="too-deep", parent_role=parent.name)
    assert exc.value.code == ErrorCode.HIERARCHY_TOO_DEEP


# ============ Permission lists ============


@pytest.mark.asyncio
async def test_allow_and_deny_are_exclusive(roles, role_factory, report_permissions):
    role = await role_factory.create(name="analyst", permissions=["report:read"])

    await roles.deny_permission(role, "report:read")
    assert role.permission_codes == []
    assert role.denied_permission_codes == ["report:read"]

    await roles.add_permission(role, "report:read")
    assert role.permission_codes == ["report:read"]
    assert role.denied_permission_codes == []


@pytest.mark.asyncio
async def test_add_permission_is_idempotent(roles, role_factory, report_permissions):
    role = await role_factory.create(name="analyst")

    await roles.add_permission(role, "report:read")
    version = role.version
    await roles.add_permission(role, "report:read")

    assert role.permission_codes == ["report:read"]
    assert role.version == version


@pytest.mark.asyncio
async def test_compatibility_gate(roles, role_factory, permission_factory):
    """Adding a permission that an existing one conflicts with fails and leaves the role as is."""
    await permission_factory.create(resource="invoice", action="approve", category="billing")
    await permission_factory.create(
        resource="invoice", action="create", category="billing", conflicts=["invoice:approve"],
    )
    role = await role_factory.create(name="clerk", permissions=["invoice:create"])
    version = role.version

    with pytest.raises(PolicyViolationError) as exc:
        await roles.add_permission(role, "invoice:approve")

    assert exc.value.code == ErrorCode.PERMISSION_INCOMPATIBLE
    assert exc.value.details["compatible"] is False
    assert exc.value.details["conflicts"][0]["code"] == "invoice:create"
    assert role.permission_codes == ["invoice:create"]
    assert role.version == version


@pytest.mark.asyncio
async def test_add_permission_requires_dependencies(roles, role_factory, permission_factory):
    await permission_factory.create(resource="job", action="read", category="workflow")
    await permission_factory.create(
        resource="job", action="update", category="workflow", dependencies=["job:read"],
    )
    role = await role_factory.create(name="recruiter")

    with pytest.raises(PolicyViolationError) as exc:
        await roles.add_permission(role, "job:update")
    assert exc.value.details["missing_dependencies"][0]["code"] == "job:read"

    await roles.add_permission(role, "job:read")
    await roles.add_permission(role, "job:update")
    assert role.permission_codes == ["job:read", "job:update"]


@pytest.mark.asyncio
async def test_remove_permission_leaves_deny_list(roles, role_factory, report_permissions):
    role = await role_factory.create(
        name="analyst",
        permissions=["report:read", "report:update"],
        denied_permissions=["report:delete"],
    )

    await roles.remove_permission(role, "report:update")
    await roles.remove_permission(role, "report:create")

    assert role.permission_codes == ["report:read"]
    assert role.denied_permission_codes == ["report:delete"]


@pytest.mark.asyncio
async def test_mutations_bump_version_and_invalidate_cache(roles, role_factory, cache, report_permissions):
    role = await role_factory.create(name="analyst", permissions=["report:read"])
    assert await roles.get_effective_permissions(role) == ["report:read"]
    assert await cache.get_role_chain(role.id) is not None

    await roles.add_permission(role, "report:create")

    assert role.version == 2
    assert await cache.get_role_chain(role.id) is None
    assert await roles.get_effective_permissions(role) == ["report:create", "report:read"]


@pytest.mark.asyncio
async def test_concurrent_modification_detected(db, roles, role_factory):
    role = await role_factory.create(name="analyst")

    # Another writer bumps the version behind this session's back
    await db.execute(
        update(Role)
        .where(Role.id == role.id)
        .values(version=Role.version + 1)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(ConflictError) as exc:
        await roles.update_role(role.id, {"description": "changed"})
    assert exc.value.code == ErrorCode.ROLE_VERSION_CONFLICT


# ============ Updates ============


@pytest.mark.asyncio
async def test_system_roles_are_protected(roles, role_factory):
    await role_factory.create(name="root", category="administrative", is_system=True, role_type="system")

    for call in (
        roles.update_role("root", {"description": "x"}),
        roles.deactivate_role("root"),
        roles.deprecate_role("root"),
    ):
        with pytest.raises(PolicyViolationError) as exc:
            await call
        assert exc.value.code == ErrorCode.SYSTEM_ROLE_PROTECTED


@pytest.mark.asyncio
async def test_reparent_cycle_rejected(roles, role_factory):
    await role_factory.create(name="a", level=90)
    await role_factory.create(name="b", parent_role="a")
    await role_factory.create(name="c", parent_role="b")

    with pytest.raises(PolicyViolationError) as exc:
        await roles.update_role("a", {"parent_role": "c"})
    assert exc.value.code == ErrorCode.HIERARCHY_CYCLE

    with pytest.raises(PolicyViolationError) as exc:
        await roles.update_role("a", {"parent_role": "a"})
    assert exc.value.code == ErrorCode.HIERARCHY_CYCLE


@pytest.mark.asyncio
async def test_level_change_cascades(roles, role_factory):
    parent = await role_factory.create(name="lead", level=80)
    child = await role_factory.create(name="senior", level=60, parent_role="lead")
    grandchild = await role_factory.create(name="junior", level=50, parent_role="senior")

    await roles.update_role(parent, {"level": 55})
    assert (parent.level, child.level, grandchild.level) == (55, 54, 50)

    await roles.update_role(parent, {"level": 40})
    assert (parent.level, child.level, grandchild.level) == (40, 39, 38)


@pytest.mark.asyncio
async def test_update_detaches_parent(roles, role_factory):
    await role_factory.create(name="lead", level=80)
    child = await role_factory.create(name="senior", parent_role="lead")

    await roles.update_role(child, {"parent_role": None, "level": 95, "tags": ["flat"]})

    assert child.parent_role_id is None
    assert child.level == 95
    assert child.tags == ["flat"]


@pytest.mark.asyncio
async def test_deactivate_and_deprecate(roles, role_factory):
    await role_factory.create(name="old")
    await role_factory.create(name="new")

    role = await roles.deprecate_role("old", replacement="new")
    assert role.deprecated_at is not None
    assert role.replaced_by_id == (await roles.get_role("new")).id
    assert role.is_active is True

    role = await roles.deactivate_role("old")
    assert role.is_active is False
    assert [r.name for r in await roles.find_by_scope("organization")] == ["new"]


# ============ Hierarchy ============


@pytest.mark.asyncio
async def test_get_hierarchy(roles, role_factory):
    await role_factory.create(name="root", level=90)
    await role_factory.create(name="branch-a", parent_role="root")
    await role_factory.create(name="leaf-a1", parent_role="branch-a")
    await role_factory.create(name="branch-b", parent_role="root")

    hierarchy = await roles.get_hierarchy("branch-a")
    assert [r.name for r in hierarchy.ancestors] == ["root"]
    assert [r.name for r in hierarchy.descendants] == ["leaf-a1"]

    hierarchy = await roles.get_hierarchy("root")
    assert hierarchy.ancestors == []
    assert [r.name for r in hierarchy.descendants] == ["branch-a", "leaf-a1", "branch-b"]

    hierarchy = await roles.get_hierarchy("leaf-a1")
    assert [r.name for r in hierarchy.ancestors] == ["branch-a", "root"]


@pytest.mark.asyncio
async def test_effective_permissions_follow_chain(roles, role_factory, report_permissions):
    await role_factory.create(name="admin", level=90, permissions=["report:read", "report:delete"])
    await role_factory.create(
        name="manager",
        parent_role="admin",
        permissions=["report:create"],
        denied_permissions=["report:delete"],
    )

    assert await roles.get_effective_permissions("manager") == ["report:create", "report:read"]


@pytest.mark.asyncio
async def test_permission_coverage_multi_role(roles, role_factory, permission_factory):
    """Any held role's denial removes the permission from the union."""
    await permission_factory.create_many(["user:read", "report:read", "ticket:read"])
    await role_factory.create(
        name="guest", category="guest", permissions=["report:read"], denied_permissions=["user:read"],
    )
    await role_factory.create(name="support", category="support", permissions=["user:read", "ticket:read"])

    coverage = await roles.get_permission_coverage(["guest", "support", "ghost"])

    assert coverage.allowed == ["report:read", "ticket:read", "user:read"]
    assert coverage.denied == ["user:read"]
    assert coverage.effective == ["report:read", "ticket:read"]


@pytest.mark.asyncio
async def test_permission_coverage_inherited(roles, role_factory, report_permissions):
    await role_factory.create(name="admin", level=90, permissions=["report:read"])
    await role_factory.create(name="manager", parent_role="admin", permissions=["report:create"])

    direct = await roles.get_permission_coverage(["manager"])
    inherited = await roles.get_permission_coverage(["manager"], include_inherited=True)

    assert direct.effective == ["report:create"]
    assert inherited.effective == ["report:create", "report:read"]


@pytest.mark.asyncio
async def test_clone(roles, role_factory, report_permissions):
    await role_factory.create(name="admin", level=90)
    source = await role_factory.create(
        name="analyst",
        parent_role="admin",
        permissions=["report:read"],
        denied_permissions=["report:delete"],
        restrictions={"max_users": 5, "requires_mfa": True},
        is_default=True,
    )

    clone = await roles.clone("analyst", "analyst-eu", {"description": "EU analysts", "is_system": True})

    assert clone.id != source.id
    assert clone.display_name == "Analyst (Copy)"
    assert clone.description == "EU analysts"
    assert clone.role_type == RoleType.CUSTOM
    assert clone.is_system is False
    assert clone.is_default is False
    assert clone.parent_role_id == source.parent_role_id
    assert clone.permission_codes == ["report:read"]
    assert clone.denied_permission_codes == ["report:delete"]
    assert clone.restrictions["max_users"] == 5
    assert (await roles.get_role_statistics(clone)).user_count == 0


# ============ Restrictions ============


@pytest.mark.asyncio
async def test_time_restriction_hours(roles, role_factory):
    role = await role_factory.create(
        name="day-shift",
        restrictions={"time_restrictions": {"allowed_hours": {"start": 9, "end": 17}}},
    )

    assert roles.check_time_restrictions(role, at(20)) is False
    assert roles.check_time_restrictions(role, at(10)) is True
    assert roles.check_time_restrictions(role, at(17)) is True


@pytest.mark.asyncio
async def test_time_restriction_days_overnight_and_timezone(roles, role_factory):
    weekdays = await role_factory.create(
        name="weekdays",
        restrictions={"time_restrictions": {"allowed_days": [1, 2, 3, 4, 5]}},
    )
    night = await role_factory.create(
        name="night-shift",
        restrictions={"time_restrictions": {"allowed_hours": {"start": 22, "end": 6}}},
    )
    new_york = await role_factory.create(
        name="new-york",
        restrictions={"time_restrictions": {
            "allowed_hours": {"start": 9, "end": 17},
            "timezone": "America/New_York",
        }},
    )
    disabled = await role_factory.create(
        name="disabled-window",
        restrictions={"time_restrictions": {"enabled": False, "allowed_days": [0]}},
    )

    assert roles.check_time_restrictions(weekdays, at(12, day=19)) is True
    assert roles.check_time_restrictions(weekdays, at(12, day=18)) is False
    assert roles.check_time_restrictions(night, at(23)) is True
    assert roles.check_time_restrictions(night, at(3)) is True
    assert roles.check_time_restrictions(night, at(12)) is False
    assert roles.check_time_restrictions(new_york, at(14)) is True
    assert roles.check_time_restrictions(new_york, at(23)) is False
    assert roles.check_time_restrictions(disabled, at(12)) is True


@pytest.mark.asyncio
async def test_ip_restriction(roles, role_factory):
    open_role = await role_factory.create(name="anywhere")
    office = await role_factory.create(
        name="office",
        restrictions={"ip_whitelist": ["10.0.0.0/8", "192.168.1.5"]},
    )

    assert roles.check_ip_restriction(open_role, None) is True
    assert roles.check_ip_restriction(office, "10.1.2.3") is True
    assert roles.check_ip_restriction(office, "192.168.1.5") is True
    assert roles.check_ip_restriction(office, "192.168.1.6") is False
    assert roles.check_ip_restriction(office, "not-an-ip") is False
    assert roles.check_ip_restriction(office, None) is False

    with pytest.raises(RBACValidationError):
        await role_factory.create(name="bad-ip", restrictions={"ip_whitelist": ["10.0.0.300"]})


@pytest.mark.asyncio
async def test_assignment_cap(db, roles, role_factory, principal_factory):
    role = await role_factory.create(name="solo", restrictions={"max_users": 1})
    principal = await principal_factory.create()

    assert (await roles.can_be_assigned_to(role, principal)).allowed is True

    await roles.stats.record_assignment(role.id)
    check = await roles.can_be_assigned_to(role, principal)

    assert check.allowed is False
    assert check.reason == "User limit reached for this role"

    # No cap is spelled as an absent max_users, never zero
    with pytest.raises(RBACValidationError):
        await role_factory.create(name="nobody", restrictions={"max_users": 0})


@pytest.mark.asyncio
async def test_assignment_rules(roles, role_factory, principal_factory):
    role = await role_factory.create(
        name="support-desk",
        assignment_rules={"conditions": [
            {"field": "attributes.department", "operator": "equals", "value": "support"},
        ]},
    )
    support = await principal_factory.create(attributes={"department": "support"})
    sales = await principal_factory.create(attributes={"department": "sales"})

    assert (await roles.can_be_assigned_to(role, support)).allowed is True
    check = await roles.can_be_assigned_to(role, sales)
    assert check.allowed is False
    assert check.reason == "User does not meet assignment criteria"

    with pytest.raises(RBACValidationError):
        await role_factory.create(
            name="senior-only",
            assignment_rules={"conditions": [
                {"field": "attributes.level", "operator": "greater_than", "value": 3},
            ]},
        )


@pytest.mark.asyncio
async def test_assignment_rule_on_email_domain(access, role_factory, principal_factory):
    await role_factory.create(
        name="acme-staff",
        assignment_rules={"conditions": [
            {"field": "email", "operator": "contains", "value": "@acme.com"},
        ]},
    )
    ann = await principal_factory.create(email="ann@acme.com")
    bob = await principal_factory.create(email="bob@other.org")

    result = await access.assign_role_to_principal("acme-staff", ann)
    assert result.created is True

    with pytest.raises(PolicyViolationError) as exc:
        await access.assign_role_to_principal("acme-staff", bob)
    assert exc.value.code == ErrorCode.ASSIGNMENT_NOT_ALLOWED


@pytest.mark.asyncio
async def test_inactive_role_cannot_be_assigned(roles, role_factory, principal_factory):
    role = await role_factory.create(name="retired", is_active=False)
    check = await roles.can_be_assigned_to(role, await principal_factory.create())

    assert check.allowed is False
    assert check.reason == "Role is not active or effective"
