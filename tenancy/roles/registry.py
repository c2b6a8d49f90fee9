"""
Role registry for Tenancy.

Resolves the role hierarchy into cached permission sets and answers
permission and rank questions in O(1).
"""

import logging
from typing import Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

from .models import DEFAULT_PERMISSIONS, HIERARCHY, RoleDefinition, role_name

logger = logging.getLogger(__name__)

_EMPTY: FrozenSet[str] = frozenset()


def resolve_permissions(
    definitions: Iterable[RoleDefinition],
    hierarchy: Sequence[str] = HIERARCHY,
) -> Dict[str, FrozenSet[str]]:
    """
    Resolve custom role definitions into a permission table.

    Roles are processed lowest rank first so that a role can inherit the
    already-resolved set of a lower role. Names outside the hierarchy are
    ignored, as is an ``inherits`` pointer to a role that has not been
    resolved yet.

    Args:
        definitions: Role definitions, in any order
        hierarchy: Role names, highest rank first

    Returns:
        Mapping of every hierarchy role to its frozen permission set

    Example:
        >>> table = resolve_permissions([
        ...     RoleDefinition(name="viewer", permissions=["read"]),
        ...     RoleDefinition(name="member", inherits="viewer", permissions=["write"]),
        ... ])
        >>> sorted(table["member"])
        ['read', 'write']
    """
    by_name = {}
    for definition in definitions:
        if definition.name not in hierarchy:
            logger.debug("Ignoring definition for unknown role %r", definition.name)
            continue
        by_name[definition.name] = definition

    resolved: Dict[str, FrozenSet[str]] = {}
    for name in reversed(hierarchy):
        definition = by_name.get(name)
        if definition is None:
            resolved[name] = _EMPTY
            continue

        permissions = set(definition.permissions)
        if definition.inherits and definition.inherits in resolved:
            permissions |= resolved[definition.inherits]
        resolved[name] = frozenset(permissions)

    return resolved


class RoleRegistry:
    """
    Holds the role hierarchy and the resolved permission table.

    The table is computed on first access and cached until ``reset()`` or
    ``define()`` is called. Unknown roles and permissions never raise; they
    simply grant nothing.

    Example:
        ```python
        registry = RoleRegistry()
        registry.has_permission("admin", "invite_members")  # True
        registry.at_least("member", "admin")  # False
        ```
    """

    def __init__(
        self,
        definitions: Optional[Iterable[RoleDefinition]] = None,
        hierarchy: Sequence[str] = HIERARCHY,
    ) -> None:
        self._hierarchy: Tuple[str, ...] = tuple(hierarchy)
        self._index = {name: i for i, name in enumerate(self._hierarchy)}
        self._definitions = list(definitions) if definitions is not None else None
        self._table: Optional[Dict[str, FrozenSet[str]]] = None

    @property
    def hierarchy(self) -> Tuple[str, ...]:
        """Role names, highest rank first."""
        return self._hierarchy

    @property
    def highest(self) -> str:
        return self._hierarchy[0]

    def define(self, definitions: Optional[Iterable[RoleDefinition]]) -> None:
        """Replace the custom role definition (None restores the defaults)."""
        self._definitions = list(definitions) if definitions is not None else None
        self.reset()

    def reset(self) -> None:
        """Drop the cached permission table; it is rebuilt on next access."""
        self._table = None

    def permission_table(self) -> Dict[str, FrozenSet[str]]:
        if self._table is None:
            self._table = self._compute()
        return self._table

    def _compute(self) -> Dict[str, FrozenSet[str]]:
        if self._definitions is None:
            return {name: DEFAULT_PERMISSIONS.get(name, _EMPTY) for name in self._hierarchy}
        return resolve_permissions(self._definitions, self._hierarchy)

    def is_valid(self, role: object) -> bool:
        return role_name(role) in self._index

    def permissions_for(self, role: object) -> FrozenSet[str]:
        """All permissions granted to ``role`` (empty for unknown roles)."""
        name = role_name(role)
        if name is None:
            return _EMPTY
        return self.permission_table().get(name, _EMPTY)

    def has_permission(self, role: object, permission: Optional[str]) -> bool:
        if permission is None:
            return False
        return str(permission) in self.permissions_for(role)

    def at_least(self, role_a: object, role_b: object) -> bool:
        """True when ``role_a`` is equal to or higher than ``role_b``."""
        idx_a = self._index.get(role_name(role_a))
        idx_b = self._index.get(role_name(role_b))
        if idx_a is None or idx_b is None:
            return False
        return idx_a <= idx_b

    def compare(self, role_a: object, role_b: object) -> int:
        """
        Compare two roles.

        Returns:
            -1 if ``role_a`` outranks ``role_b``, 0 if equal, 1 if lower.
            Unknown roles rank below every known role.
        """
        unknown = len(self._hierarchy)
        idx_a = self._index.get(role_name(role_a), unknown)
        idx_b = self._index.get(role_name(role_b), unknown)
        if idx_a == idx_b:
            return 0
        return -1 if idx_a < idx_b else 1

    def higher_role(self, role: object) -> Optional[str]:
        """Next role up, or None at the top (or for unknown roles)."""
        idx = self._index.get(role_name(role))
        if idx is None or idx == 0:
            return None
        return self._hierarchy[idx - 1]

    def lower_role(self, role: object) -> Optional[str]:
        """Next role down, or None at the bottom (or for unknown roles)."""
        idx = self._index.get(role_name(role))
        if idx is None or idx == len(self._hierarchy) - 1:
            return None
        return self._hierarchy[idx + 1]

    def rank(self, role: object) -> int:
        """Hierarchy index used for sorting; unknown roles sort last."""
        return self._index.get(role_name(role), len(self._hierarchy))
