"""
Access-control services.
"""

from .assignments import AssignmentResult, AssignmentService
from .catalog import CatalogService, calculate_risk_level
from .evaluator import AuthorizationEvaluator
from .permission_sets import PermissionSetService
from .roles import RoleService, check_ip_restriction, check_time_restrictions
from .seeder import Seeder

__all__ = [
    "AssignmentResult",
    "AssignmentService",
    "CatalogService",
    "calculate_risk_level",
    "AuthorizationEvaluator",
    "PermissionSetService",
    "RoleService",
    "check_ip_restriction",
    "check_time_restrictions",
    "Seeder",
]
