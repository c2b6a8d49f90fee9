"""
Tenancy roles module.

Provides the role hierarchy and permission resolution.
"""

from .models import DEFAULT_PERMISSIONS, HIERARCHY, Role, RoleDefinition, role_name
from .registry import RoleRegistry, resolve_permissions

__all__ = [
    "RoleRegistry",
    "resolve_permissions",
    "Role",
    "RoleDefinition",
    "HIERARCHY",
    "DEFAULT_PERMISSIONS",
    "role_name",
]
