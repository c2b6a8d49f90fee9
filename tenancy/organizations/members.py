"""
Membership management for Tenancy.

Role changes on a single membership (promote / demote) and the permission
queries hosts run on every request.
"""

import logging
from typing import TYPE_CHECKING, Any, FrozenSet, List, Optional, Union

from ..errors import (
    CannotDemoteOwner,
    CannotPromoteToOwner,
    InvalidRole,
    InvalidRoleChange,
    MembershipNotFound,
    NotAMember,
    NotAuthorized,
    OrganizationNotFound,
)
from ..events.models import Event
from ..roles.models import Role, role_name
from ..utils.ids import id_of
from .models import Membership

if TYPE_CHECKING:
    from ..client import Tenancy

logger = logging.getLogger(__name__)


async def authorize(tx, roles, organization: Any, user: Any, permission: str) -> Membership:
    """
    Return the user's membership if its role grants ``permission``.

    Raises:
        NotAMember: If the user has no membership in the organization
        NotAuthorized: If the membership's role lacks the permission
    """
    membership = await tx.get_membership(id_of(organization), id_of(user))
    if membership is None:
        raise NotAMember(organization=organization, user=user)
    if not roles.has_permission(membership.role, permission):
        raise NotAuthorized(permission=permission, organization=organization, user=user)
    return membership


class MembershipManager:
    """
    Manager for membership operations.

    Example:
        ```python
        membership = await tenancy.memberships.get(org, user)

        # Move within the hierarchy
        membership = await tenancy.memberships.promote(membership, Role.ADMIN)
        membership = await tenancy.memberships.demote(membership, Role.VIEWER)

        # Permission checks
        if await tenancy.memberships.has_permission(user, "invite_members", org):
            ...
        ```
    """

    def __init__(self, tenancy: "Tenancy") -> None:
        self.tenancy = tenancy

    @property
    def store(self):
        return self.tenancy.store

    # Role changes

    async def promote(self, membership: Membership, new_role: Union[Role, str], changed_by: Any = None) -> Membership:
        """
        Promote a membership to an equal or higher role.

        Raises:
            InvalidRole: If ``new_role`` is not in the hierarchy
            CannotPromoteToOwner: If ``new_role`` is owner
            InvalidRoleChange: If ``new_role`` is lower than the current role
        """
        name = self._validate(new_role)
        if name == Role.OWNER.value:
            raise CannotPromoteToOwner(
                "Cannot promote to owner. Use transfer_ownership instead.",
                user=membership.user_id,
            )

        def check(current: Membership) -> None:
            if not self.tenancy.roles.at_least(name, current.role):
                raise InvalidRoleChange(
                    f"Cannot promote to {name} - it's not a higher role than {current.role}"
                )

        return await self._change(membership, name, check, changed_by)

    async def demote(self, membership: Membership, new_role: Union[Role, str], changed_by: Any = None) -> Membership:
        """
        Demote a membership to an equal or lower role.

        Raises:
            InvalidRole: If ``new_role`` is not in the hierarchy
            CannotDemoteOwner: If the membership is the owner
            InvalidRoleChange: If ``new_role`` is higher than the current role
        """
        name = self._validate(new_role)

        def check(current: Membership) -> None:
            if current.is_owner:
                raise CannotDemoteOwner(user=current.user_id)
            if not self.tenancy.roles.at_least(current.role, name):
                raise InvalidRoleChange(
                    f"Cannot demote to {name} - it's not a lower role than {current.role}"
                )

        return await self._change(membership, name, check, changed_by)

    def _validate(self, role: Union[Role, str]) -> str:
        name = role_name(role)
        if not self.tenancy.roles.is_valid(name):
            valid = ", ".join(self.tenancy.roles.hierarchy)
            raise InvalidRole(f"Invalid role: {role}. Must be one of: {valid}")
        return name

    async def _change(self, membership: Membership, name: str, check, changed_by: Any) -> Membership:
        async with self.store.transaction() as tx:
            org = await tx.lock_organization(membership.organization_id)
            if org is None:
                raise OrganizationNotFound(f"Organization not found: {membership.organization_id}")
            current = await tx.lock_membership(membership.id)
            if current is None:
                raise MembershipNotFound(organization=org, user=membership.user_id)

            check(current)
            old_role = current.role
            if old_role == name:
                return current
            updated = await tx.update_membership_role(current.id, name)

        logger.debug("Changed role of membership %s from %s to %s", updated.id, old_role, name)
        await self.tenancy.events.dispatch(
            Event.ROLE_CHANGED,
            organization=org,
            membership=updated,
            old_role=old_role,
            new_role=name,
            changed_by=changed_by,
        )
        return updated

    # Queries

    async def get(self, organization: Any, user: Any) -> Optional[Membership]:
        async with self.store.transaction() as tx:
            return await tx.get_membership(id_of(organization), id_of(user))

    async def role_in(self, user: Any, organization: Any) -> Optional[str]:
        """The user's role in the organization, or None for non-members."""
        if organization is None:
            return None
        membership = await self.get(organization, user)
        return membership.role if membership else None

    async def is_at_least(self, user: Any, role: Union[Role, str], organization: Any) -> bool:
        current = await self.role_in(user, organization)
        return current is not None and self.tenancy.roles.at_least(current, role)

    async def has_permission(self, user: Any, permission: str, organization: Any) -> bool:
        current = await self.role_in(user, organization)
        return self.tenancy.roles.has_permission(current, permission)

    async def permissions(self, user: Any, organization: Any) -> FrozenSet[str]:
        return self.tenancy.roles.permissions_for(await self.role_in(user, organization))

    async def require_permission(self, user: Any, permission: str, organization: Any) -> Membership:
        """Like ``has_permission`` but raises NotAMember / NotAuthorized."""
        async with self.store.transaction() as tx:
            return await authorize(tx, self.tenancy.roles, organization, user, permission)

    async def list_for_user(self, user: Any) -> List[Membership]:
        async with self.store.transaction() as tx:
            return await tx.list_memberships(user_id=id_of(user))

    async def belongs_to_any(self, user: Any) -> bool:
        async with self.store.transaction() as tx:
            return await tx.count_memberships(user_id=id_of(user)) > 0
