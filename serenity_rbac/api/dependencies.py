"""
Permission checking dependencies.
"""

from typing import Any, Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from serenity_rbac.access import AccessControl
from serenity_rbac.core.cache import PermissionCache
from serenity_rbac.core.hooks import HookManager


def require_permission(
    permission: str,
    principal_dependency: Callable,
    session_dependency: Callable,
    cache: PermissionCache | None = None,
    hooks: HookManager | None = None,
) -> Callable:
    """
    Dependency factory for checking a permission against the current
    principal's role assignments.

    ``principal_dependency`` resolves the caller (Principal, id or email);
    ``session_dependency`` yields the request's AsyncSession.

    Usage:
    ```python
    @router.get("/reports")
    async def list_reports(
        principal=Depends(require_permission("report:read", get_principal, get_db)),
    ):
        ...
    ```
    """

    async def check_permission(
        request: Request,
        principal: Any = Depends(principal_dependency),
        db: AsyncSession = Depends(session_dependency),
    ) -> Any:
        access = AccessControl.from_settings(db, cache=cache, hooks=hooks)
        context = {"ip_address": request.client.host if request.client else None}
        decision = await access.authorize_principal(principal, permission, context=context)

        if not decision.granted:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {permission}",
            )
        if decision.requires_mfa:
            request.state.requires_mfa = True
        if decision.requires_approval:
            request.state.requires_approval = True
        return principal

    return check_permission
