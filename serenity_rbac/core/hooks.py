"""
Hook manager for access-control lifecycle events.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Awaitable, Callable, ParamSpec, TypeVar

import structlog

logger = structlog.get_logger()

P = ParamSpec("P")
R = TypeVar("R")


class HookEvent:
    """Event names triggered by the library."""
    PERMISSION_CREATED = "permission.created"
    PERMISSION_DEPRECATED = "permission.deprecated"
    ROLE_CREATED = "role.created"
    ROLE_UPDATED = "role.updated"
    ROLE_ASSIGNED = "role.assigned"
    SEED_COMPLETED = "seed.completed"


class HookPriority(IntEnum):
    """Hook execution priority (lower runs first)."""
    FIRST = 0
    EARLY = 25
    NORMAL = 50
    LATE = 75
    LAST = 100


@dataclass
class Hook:
    """Registered hook information."""
    name: str
    handler: Callable[..., Awaitable[Any]]
    priority: HookPriority = HookPriority.NORMAL
    once: bool = False  # Run only once then unregister
    source: str = ""


@dataclass
class HookResult:
    """Result from running hooks."""
    hook_name: str
    results: list[Any] = field(default_factory=list)
    errors: list[tuple[str, Exception]] = field(default_factory=list)


class HookManager:
    """
    Manages lifecycle hooks.

    Events (see HookEvent):
    - permission.created: permission added to the catalog
    - permission.deprecated: permission deprecated
    - role.created: role created (also clones)
    - role.updated: role permissions/attributes changed
    - role.assigned: role assigned to a principal
    - seed.completed: seeder finished

    Handler errors are logged and collected on the HookResult; they never
    propagate into the operation that triggered the event.

    Example usage:
    ```python
    hooks = HookManager()

    @hooks.on(HookEvent.ROLE_UPDATED)
    async def audit(role, **changes):
        await audit_log.write("role.updated", role.name, changes)

    await hooks.trigger(HookEvent.ROLE_UPDATED, role=role, change="deny")
    ```
    """

    def __init__(self):
        self._hooks: dict[str, list[Hook]] = defaultdict(list)

    def register(
        self,
        name: str,
        handler: Callable[..., Awaitable[Any]],
        *,
        priority: HookPriority = HookPriority.NORMAL,
        once: bool = False,
        source: str = "",
    ) -> Hook:
        """Register a hook handler."""
        hook = Hook(
            name=name,
            handler=handler,
            priority=priority,
            once=once,
            source=source,
        )

        self._hooks[name].append(hook)
        self._hooks[name].sort(key=lambda h: h.priority)

        logger.debug("Registered hook", hook=name, priority=int(priority))
        return hook

    def unregister(self, name: str, handler: Callable) -> bool:
        """Unregister a hook handler."""
        hooks = self._hooks.get(name, [])
        for i, hook in enumerate(hooks):
            if hook.handler is handler:
                del hooks[i]
                return True
        return False

    def on(
        self,
        name: str,
        *,
        priority: HookPriority = HookPriority.NORMAL,
        once: bool = False,
    ) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
        """Decorator to register a hook handler."""
        def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
            self.register(name, func, priority=priority, once=once)
            return func
        return decorator

    async def trigger(self, name: str, *args, **kwargs) -> HookResult:
        """Trigger all handlers for a hook, in priority order."""
        result = HookResult(hook_name=name)
        done_once = []

        for hook in list(self._hooks.get(name, [])):
            try:
                result.results.append(await hook.handler(*args, **kwargs))
            except Exception as e:
                result.errors.append((hook.source or getattr(hook.handler, "__name__", str(hook.handler)), e))
                logger.error("Hook handler error", hook=name, error=str(e))
            if hook.once:
                done_once.append(hook)

        for hook in done_once:
            self._hooks[name].remove(hook)

        return result

    def has_hooks(self, name: str) -> bool:
        """Check if any hooks are registered for name."""
        return bool(self._hooks.get(name))

    def clear(self, name: str | None = None) -> None:
        """Clear hooks. If name given, clear only that hook."""
        if name:
            self._hooks.pop(name, None)
        else:
            self._hooks.clear()
