"""
In-process TTL cache for derived access-control data.

Holds two kinds of entries (keys are prefixed with RBAC_CACHE_PREFIX):
- set:<code>          -> expanded permission-set code list
- role:<id>:chain     -> (allow codes, deny codes) over a role's ancestor chain

Permission sets change only through seeding, so the TTL alone bounds
their staleness. Role entries are dropped on every role mutation and
again when the mutating transaction ends (see ``RoleService``).

Note: per-process only. In a multi-process deployment the TTL bounds
how long another process can serve a stale role chain.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from serenity_rbac.utils.timezone import utc_now


@dataclass
class CacheEntry:
    """Cache entry with value and expiration."""
    value: Any
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return utc_now() >= self.expires_at


class MemoryCacheBackend:
    """
    In-memory cache backend.

    Usage:
        cache = MemoryCacheBackend(default_ttl=300, prefix="rbac:")
        await cache.set("set:read-only", ["user:read"])
        codes = await cache.get("set:read-only")
    """

    def __init__(self, default_ttl: int = 300, prefix: str = "", enabled: bool = True):
        self.default_ttl = default_ttl
        self.prefix = prefix
        self.enabled = enabled
        self._store: dict[str, CacheEntry] = {}

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _ttl_seconds(self, ttl: int | timedelta | None) -> int | None:
        if ttl is None:
            return self.default_ttl
        if isinstance(ttl, timedelta):
            return int(ttl.total_seconds())
        return ttl

    async def get(self, key: str) -> Any | None:
        if not self.enabled:
            return None
        full_key = self._key(key)
        entry = self._store.get(full_key)
        if entry is None:
            return None
        if entry.is_expired:
            del self._store[full_key]
            return None
        return entry.value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | timedelta | None = None,
    ) -> bool:
        if not self.enabled:
            return False
        ttl_seconds = self._ttl_seconds(ttl)
        expires_at = None
        if ttl_seconds:
            expires_at = utc_now() + timedelta(seconds=ttl_seconds)

        self._store[self._key(key)] = CacheEntry(value=value, expires_at=expires_at)
        return True

    async def delete(self, key: str) -> bool:
        full_key = self._key(key)
        if full_key in self._store:
            del self._store[full_key]
            return True
        return False

    async def delete_pattern(self, pattern: str) -> int:
        return self.delete_matching(pattern)

    def delete_matching(self, pattern: str) -> int:
        full_pattern = self._key(pattern)
        matching_keys = [k for k in self._store if fnmatch.fnmatch(k, full_pattern)]
        for key in matching_keys:
            del self._store[key]
        return len(matching_keys)

    async def clear(self) -> None:
        """Clear all cache entries."""
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


class PermissionCache:
    """Typed facade over the backend for the two access-control entry kinds."""

    def __init__(self, backend: MemoryCacheBackend):
        self.backend = backend
        # Bumped on every role invalidation; a chain computed under an older
        # generation is not stored.
        self.role_generation = 0

    # Permission sets
    async def get_set(self, code: str) -> list[str] | None:
        return await self.backend.get(f"set:{code}")

    async def set_set(self, code: str, codes: list[str]) -> None:
        await self.backend.set(f"set:{code}", list(codes))

    async def invalidate_set(self, code: str | None = None) -> int:
        if code:
            return int(await self.backend.delete(f"set:{code}"))
        return await self.backend.delete_pattern("set:*")

    # Role chains
    async def get_role_chain(self, role_id: Any) -> tuple[frozenset[str], frozenset[str]] | None:
        return await self.backend.get(f"role:{role_id}:chain")

    async def set_role_chain(
        self,
        role_id: Any,
        allowed: frozenset[str],
        denied: frozenset[str],
        generation: int | None = None,
    ) -> bool:
        if generation is not None and generation != self.role_generation:
            return False
        return await self.backend.set(f"role:{role_id}:chain", (allowed, denied))

    async def invalidate_roles(self) -> int:
        return self.discard_role_chains()

    def discard_role_chains(self) -> int:
        """Synchronous variant for session event listeners."""
        # A change to one role affects every descendant's chain
        self.role_generation += 1
        return self.backend.delete_matching("role:*")

    async def clear(self) -> None:
        self.role_generation += 1
        await self.backend.clear()
