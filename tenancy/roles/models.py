"""
Tenancy role models.

The role hierarchy and the built-in permission table.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator


class Role(str, Enum):
    """Organization roles, highest authority first."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


# Index 0 is the highest rank
HIERARCHY = (Role.OWNER.value, Role.ADMIN.value, Role.MEMBER.value, Role.VIEWER.value)

_VIEWER = frozenset({"view_organization", "view_members"})
_MEMBER = _VIEWER | {"create_resources", "edit_own_resources", "delete_own_resources"}
_ADMIN = _MEMBER | {
    "invite_members",
    "remove_members",
    "edit_member_roles",
    "manage_settings",
    "view_billing",
}
_OWNER = _ADMIN | {"manage_billing", "transfer_ownership", "delete_organization"}

DEFAULT_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    Role.VIEWER.value: _VIEWER,
    Role.MEMBER.value: frozenset(_MEMBER),
    Role.ADMIN.value: frozenset(_ADMIN),
    Role.OWNER.value: frozenset(_OWNER),
}


def role_name(role: Optional[object]) -> Optional[str]:
    """Normalize a Role, string or None into a plain role string."""
    if role is None:
        return None
    if isinstance(role, Role):
        return role.value
    return str(role).strip().lower() or None


class RoleDefinition(BaseModel):
    """
    Declarative definition of one role's permissions.

    Example:
        ```python
        RoleDefinition(name="viewer", permissions=["view_organization"])
        RoleDefinition(name="member", inherits="viewer", permissions=["create_resources"])
        ```
    """

    name: str = Field(..., min_length=1, max_length=64)
    inherits: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("name", "inherits")
    @classmethod
    def normalize_role_name(cls, v: Optional[str]) -> Optional[str]:
        return role_name(v)

    @field_validator("permissions")
    @classmethod
    def normalize_permissions(cls, v: List[str]) -> List[str]:
        return [p.strip() for p in v if p and p.strip()]
