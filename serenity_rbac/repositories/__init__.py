"""
Repositories.
"""

from .base import BaseRepository, Page, coerce_uuid
from .permission import PermissionRepository, PermissionSetRepository
from .role import (
    PrincipalRepository,
    PrincipalRoleRepository,
    RoleRepository,
    RoleStatisticsRepository,
)

__all__ = [
    "BaseRepository",
    "Page",
    "coerce_uuid",
    "PermissionRepository",
    "PermissionSetRepository",
    "PrincipalRepository",
    "PrincipalRoleRepository",
    "RoleRepository",
    "RoleStatisticsRepository",
]
