"""
Seeder - idempotent bootstrap of the catalog, permission sets and
well-known roles.

Permissions and sets are created only when missing. Role allow-lists
are recomputed from ROLE_MAPPINGS and replaced on every run, so
re-seeding after a catalog change keeps roles in sync.
"""

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from serenity_rbac import seed_data
from serenity_rbac.core.config import Settings, get_settings
from serenity_rbac.core.hooks import HookEvent, HookManager
from serenity_rbac.models.permission import Permission
from serenity_rbac.repositories import PermissionRepository, PermissionSetRepository
from serenity_rbac.schemas.decision import SeedResult
from serenity_rbac.services.catalog import CatalogService
from serenity_rbac.services.permission_sets import PermissionSetService
from serenity_rbac.services.roles import RoleService

logger = structlog.get_logger()


class Seeder:
    """Populate an empty (or partially seeded) store."""

    def __init__(
        self,
        db: AsyncSession,
        catalog: CatalogService | None = None,
        sets: PermissionSetService | None = None,
        roles: RoleService | None = None,
        hooks: HookManager | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.hooks = hooks
        self.settings = settings or get_settings()
        self.catalog = catalog or CatalogService(db, hooks)
        self.sets = sets or PermissionSetService(db)
        self.roles = roles or RoleService(db, catalog=self.catalog, hooks=hooks, settings=self.settings.rbac)
        self.permission_repo = PermissionRepository(db)
        self.set_repo = PermissionSetRepository(db)

    async def run(self, environment: str | None = None) -> SeedResult:
        environment = environment or self.settings.environment
        result = SeedResult()
        log = logger.bind(environment=environment)
        log.info("Seeding started")

        definitions = seed_data.resource_permissions() + seed_data.CUSTOM_PERMISSIONS
        if environment == "development":
            definitions += seed_data.DEVELOPMENT_PERMISSIONS
        await self._seed_permissions(definitions, result)

        await self._seed_sets(result)
        await self._seed_roles(result)

        log.info("Seeding completed", **result.to_dict())
        if self.hooks:
            await self.hooks.trigger(HookEvent.SEED_COMPLETED, result=result, environment=environment)
        return result

    async def _seed_permissions(self, definitions: list[dict[str, Any]], result: SeedResult) -> None:
        existing = await self.permission_repo.existing_codes(d["code"] for d in definitions)
        for definition in definitions:
            if definition["code"] in existing:
                result.skipped += 1
                continue
            await self.catalog.create_permission(definition)
            existing.add(definition["code"])
            result.created += 1

    async def _seed_sets(self, result: SeedResult) -> None:
        for definition in seed_data.PERMISSION_SETS:
            if await self.set_repo.exists(code=definition["code"]):
                continue
            await self.sets.create_set(definition)
            result.permission_sets_created += 1

    async def _seed_roles(self, result: SeedResult) -> None:
        for definition in seed_data.WELL_KNOWN_ROLES:
            if await self.roles.find_role(definition["name"]) is None:
                await self.roles.create_role(definition)
                result.roles_created += 1

        for name, mapping in seed_data.ROLE_MAPPINGS.items():
            codes = await self._mapped_codes(name, mapping)
            if await self.roles.set_permissions(name, codes):
                result.roles_updated += 1

    async def _mapped_codes(self, role_name: str, mapping: dict[str, Any]) -> list[str]:
        """``(all | sets) + additional - exclude``, deduplicated, catalog codes only."""
        codes: list[str] = []
        if mapping.get("permissions") == "*":
            rows = await self.db.execute(
                select(Permission.code)
                .where(Permission.is_active.is_(True))
                .order_by(Permission.code)
            )
            codes.extend(rows.scalars().all())
        codes.extend(await self.sets.resolve_many(mapping.get("sets", [])))
        codes.extend(mapping.get("additional", []))

        excluded = set(mapping.get("exclude", []))
        codes = [c for c in dict.fromkeys(codes) if c not in excluded]

        known = await self.permission_repo.existing_codes(codes)
        unknown = [c for c in codes if c not in known]
        if unknown:
            logger.warning("Skipping unknown permissions in role mapping", role=role_name, codes=unknown)
        return [c for c in codes if c in known]
