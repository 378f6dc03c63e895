"""
FastAPI integration: exception handlers and permission dependencies.
"""

from .dependencies import require_permission
from .errors import register_exception_handlers

__all__ = ["register_exception_handlers", "require_permission"]
