"""
Organization management for Tenancy.

The organization is the aggregate root: every mutation of its memberships
locks the organization row first, then the membership rows it touches, and
re-reads everything it decides on after taking the locks.
"""

import logging
import re
import unicodedata
from typing import TYPE_CHECKING, Any, List, Optional, Union
from uuid import UUID

from ..errors import (
    CannotDemoteOwner,
    CannotHaveMultipleOwners,
    CannotLeaveAsLastOwner,
    CannotLeaveLastOrganization,
    CannotRemoveOwner,
    CannotTransferToNonAdmin,
    CannotTransferToNonMember,
    InvalidRole,
    MembershipNotFound,
    NoOwnerPresent,
    OrganizationLimitReached,
    OrganizationNotFound,
    StoreError,
    UniqueViolation,
)
from ..events.models import Event
from ..roles.models import Role, role_name
from ..storage.base import MEMBERSHIP_USER_ORG, ORGANIZATION_SLUG
from ..utils.ids import email_of, id_of, require_email
from .models import Membership, Organization

if TYPE_CHECKING:
    from ..client import Tenancy
    from ..invitations.models import Invitation

logger = logging.getLogger(__name__)

MAX_SLUG_ATTEMPTS = 5
_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(name: str, max_length: int = 200) -> str:
    """
    Turn an organization name into a URL-safe slug.

    Example:
        >>> slugify("Acme Corp!")
        'acme-corp'
    """
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    slug = _SLUG_STRIP.sub("-", ascii_name.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "organization"


class OrganizationManager:
    """
    Manager for organization operations.

    Example:
        ```python
        tenancy = await Tenancy.create()

        # Create organization (creator becomes owner)
        org = await tenancy.orgs.create(owner=user, name="Acme Corp")

        # Manage members
        await tenancy.orgs.add_member(org, alice, role=Role.ADMIN)
        await tenancy.orgs.change_role(org, alice, Role.MEMBER, changed_by=user)
        await tenancy.orgs.transfer_ownership(org, bob)

        # Invite by email
        invite = await tenancy.orgs.send_invite(org, "new@example.com", invited_by=user)
        ```
    """

    def __init__(self, tenancy: "Tenancy") -> None:
        """
        Initialize OrganizationManager.

        Args:
            tenancy: Tenancy client instance
        """
        self.tenancy = tenancy

    @property
    def store(self):
        return self.tenancy.store

    # Creation

    async def _available_slug(self, tx, base: str) -> str:
        if not await tx.slug_exists(base):
            return base
        suffix = 2
        while await tx.slug_exists(f"{base}-{suffix}"):
            suffix += 1
        return f"{base}-{suffix}"

    async def create(
        self,
        owner: Any,
        name: str,
        slug: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Organization:
        """
        Create an organization with ``owner`` as its owner.

        The organization and the owner membership are written in one
        transaction. A slug is derived from the name unless given; on
        collision a numeric suffix (``-2``, ``-3``, ...) is appended.

        Args:
            owner: User who becomes the owner
            name: Display name
            slug: Explicit slug (must be free)
            email: Owner address when ``owner`` carries none (e.g. a bare id)

        Returns:
            Created Organization

        Raises:
            OrganizationLimitReached: If the owner already owns
                ``max_organizations_per_user`` organizations
            UniqueViolation: If an explicit slug is taken
            ValueError: If the name is blank or no owner email is known
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Organization name is required")

        owner_id = id_of(owner)
        owner_email = require_email(owner, email)
        limit = self.tenancy.config.max_organizations_per_user
        base = slug or slugify(name)

        for attempt in range(1, MAX_SLUG_ATTEMPTS + 1):
            try:
                async with self.store.transaction() as tx:
                    if limit is not None:
                        owned = await tx.count_memberships(user_id=owner_id, roles=[Role.OWNER.value])
                        if owned >= limit:
                            raise OrganizationLimitReached(
                                f"You can only own {limit} organization(s)",
                                user=owner,
                            )

                    candidate = base if slug else await self._available_slug(tx, base)
                    organization = await tx.insert_organization(Organization(name=name, slug=candidate))
                    membership = await tx.insert_membership(
                        Membership(
                            user_id=owner_id,
                            organization_id=organization.id,
                            email=owner_email,
                            role=Role.OWNER.value,
                        )
                    )
            except UniqueViolation as e:
                if e.constraint != ORGANIZATION_SLUG or slug:
                    raise
                logger.info("Slug %r taken concurrently (attempt %d), retrying", base, attempt)
                continue
            break
        else:
            raise StoreError(f"Could not allocate a unique slug for {name!r}")

        logger.debug("Created organization %s (%s)", organization.id, organization.slug)
        await self.tenancy.events.dispatch(
            Event.ORGANIZATION_CREATED,
            organization=organization,
            user=owner,
            membership=membership,
        )
        return organization

    async def create_personal(self, user: Any) -> Optional[Organization]:
        """
        Create the user's personal organization when onboarding enables it.

        Returns:
            The new Organization, or None if personal organizations are off
        """
        config = self.tenancy.config
        if not config.create_personal_organization:
            return None
        return await self.create(user, config.personal_organization_name_for(email_of(user)))

    # Lookups

    async def get(self, organization_id: Union[UUID, str]) -> Optional[Organization]:
        async with self.store.transaction() as tx:
            return await tx.get_organization(id_of(organization_id))

    async def get_by_slug(self, slug: str) -> Optional[Organization]:
        async with self.store.transaction() as tx:
            return await tx.get_organization_by_slug(slug)

    async def _require(self, tx, organization: Any, lock: bool = False) -> Organization:
        org_id = id_of(organization)
        if lock:
            org = await tx.lock_organization(org_id)
        else:
            org = await tx.get_organization(org_id)
        if org is None:
            raise OrganizationNotFound(f"Organization not found: {org_id}")
        return org

    async def list_for_user(self, user: Any, roles: Optional[List[Union[Role, str]]] = None) -> List[Organization]:
        """Organizations the user belongs to, optionally filtered by role."""
        role_names = [role_name(r) for r in roles] if roles is not None else None
        async with self.store.transaction() as tx:
            return await tx.list_organizations(user_id=id_of(user), roles=role_names)

    async def owned_by(self, user: Any) -> List[Organization]:
        return await self.list_for_user(user, roles=[Role.OWNER])

    async def delete(self, organization: Any) -> bool:
        """Delete an organization together with its memberships and invitations."""
        async with self.store.transaction() as tx:
            deleted = await tx.delete_organization(id_of(organization))
        if deleted:
            logger.info("Deleted organization %s", id_of(organization))
        return deleted

    # Membership queries

    async def owner(self, organization: Any) -> Optional[Membership]:
        async with self.store.transaction() as tx:
            return await tx.get_owner_membership(id_of(organization))

    async def members(self, organization: Any) -> List[Membership]:
        """Memberships ordered by role (owner first), then join date."""
        async with self.store.transaction() as tx:
            memberships = await tx.list_memberships(organization_id=id_of(organization))
        rank = self.tenancy.roles.rank
        return sorted(memberships, key=lambda m: (rank(m.role), m.created_at))

    async def admins(self, organization: Any) -> List[Membership]:
        """Memberships with admin rank or above."""
        roles = self.tenancy.roles
        wanted = [r for r in roles.hierarchy if roles.at_least(r, Role.ADMIN)]
        async with self.store.transaction() as tx:
            memberships = await tx.list_memberships(organization_id=id_of(organization), roles=wanted)
        return sorted(memberships, key=lambda m: (roles.rank(m.role), m.created_at))

    async def has_member(self, organization: Any, user: Any) -> bool:
        async with self.store.transaction() as tx:
            return await tx.get_membership(id_of(organization), id_of(user)) is not None

    async def member_count(self, organization: Any) -> int:
        async with self.store.transaction() as tx:
            return await tx.count_memberships(organization_id=id_of(organization))

    async def pending_invitations(self, organization: Any) -> List["Invitation"]:
        return await self.tenancy.invites.list_for_organization(organization, pending_only=True)

    # Membership mutations

    async def add_member(
        self,
        organization: Any,
        user: Any,
        role: Union[Role, str] = Role.MEMBER,
        invited_by: Any = None,
        email: Optional[str] = None,
    ) -> Membership:
        """
        Add a user to an organization.

        Idempotent: an existing membership is returned unchanged, whatever
        its role. A concurrent insert of the same membership resolves to the
        winning row.

        Raises:
            CannotHaveMultipleOwners: If ``role`` is owner
            InvalidRole: If ``role`` is not in the hierarchy
            ValueError: If neither ``email`` nor the user's email is set
        """
        name = role_name(role)
        if name == Role.OWNER.value:
            raise CannotHaveMultipleOwners(organization=organization, user=user)
        if not self.tenancy.roles.is_valid(name):
            raise InvalidRole(f"Invalid role: {role}")

        org_id, user_id = id_of(organization), id_of(user)
        address = require_email(user, email)
        try:
            async with self.store.transaction() as tx:
                org = await self._require(tx, organization)
                existing = await tx.get_membership(org_id, user_id)
                if existing is not None:
                    return existing
                membership = await tx.insert_membership(
                    Membership(
                        user_id=user_id,
                        organization_id=org_id,
                        email=address,
                        role=name,
                        invited_by=id_of(invited_by) if invited_by is not None else None,
                    )
                )
        except UniqueViolation as e:
            if e.constraint != MEMBERSHIP_USER_ORG:
                raise
            logger.info("Concurrent add_member for user %s in %s, using existing row", user_id, org_id)
            async with self.store.transaction() as tx:
                existing = await tx.get_membership(org_id, user_id)
            if existing is None:
                raise
            return existing

        await self.tenancy.events.dispatch(
            Event.MEMBER_JOINED,
            organization=org,
            membership=membership,
            user=user,
            invited_by=invited_by,
        )
        return membership

    async def remove_member(self, organization: Any, user: Any, removed_by: Any = None) -> Optional[Membership]:
        """
        Remove a user from an organization.

        Returns:
            The removed membership, or None if the user was not a member

        Raises:
            CannotRemoveOwner: If the user is the owner
        """
        async with self.store.transaction() as tx:
            org = await self._require(tx, organization, lock=True)
            membership = await tx.get_membership(org.id, id_of(user))
            if membership is not None:
                membership = await tx.lock_membership(membership.id)
            if membership is None:
                return None
            if membership.is_owner:
                raise CannotRemoveOwner(organization=org, user=user)
            await tx.delete_membership(membership.id)

        await self.tenancy.events.dispatch(
            Event.MEMBER_REMOVED,
            organization=org,
            membership=membership,
            user=user,
            removed_by=removed_by,
        )
        return membership

    async def change_role(
        self,
        organization: Any,
        user: Any,
        new_role: Union[Role, str],
        changed_by: Any = None,
    ) -> Membership:
        """
        Change a member's role.

        Ownership moves only through ``transfer_ownership``: promoting to
        owner and demoting the owner are both rejected. A same-role request
        changes nothing and emits no event.

        Raises:
            InvalidRole: If ``new_role`` is not in the hierarchy
            MembershipNotFound: If the user is not a member
            CannotHaveMultipleOwners: If ``new_role`` is owner
            CannotDemoteOwner: If the user is the owner
        """
        name = role_name(new_role)
        if not self.tenancy.roles.is_valid(name):
            raise InvalidRole(f"Invalid role: {new_role}")

        async with self.store.transaction() as tx:
            org = await self._require(tx, organization, lock=True)
            current = await tx.get_membership(org.id, id_of(user))
            if current is not None:
                current = await tx.lock_membership(current.id)
            if current is None:
                raise MembershipNotFound(organization=org, user=user)

            old_role = current.role
            if old_role == name:
                return current
            if name == Role.OWNER.value:
                raise CannotHaveMultipleOwners(organization=org, user=user)
            if current.is_owner:
                raise CannotDemoteOwner(organization=org, user=user)

            updated = await tx.update_membership_role(current.id, name)

        await self.tenancy.events.dispatch(
            Event.ROLE_CHANGED,
            organization=org,
            membership=updated,
            user=user,
            old_role=old_role,
            new_role=name,
            changed_by=changed_by,
        )
        return updated

    async def transfer_ownership(self, organization: Any, new_owner: Any, transferred_by: Any = None) -> Membership:
        """
        Make ``new_owner`` the owner; the previous owner becomes an admin.

        Both memberships are read fresh under the organization lock, then
        locked in ascending user-id order and rewritten in one transaction.

        Returns:
            The new owner's membership

        Raises:
            NoOwnerPresent: If the organization has no owner
            CannotTransferToNonMember: If ``new_owner`` is not a member
            CannotTransferToNonAdmin: If ``new_owner`` is below admin
        """
        roles = self.tenancy.roles
        new_owner_id = id_of(new_owner)

        async with self.store.transaction() as tx:
            org = await self._require(tx, organization, lock=True)
            old = await tx.get_owner_membership(org.id)
            if old is None:
                raise NoOwnerPresent(organization=org)
            candidate = await tx.get_membership(org.id, new_owner_id)
            if candidate is None:
                raise CannotTransferToNonMember(organization=org, user=new_owner)
            if candidate.id == old.id:
                return old
            if not roles.at_least(candidate.role, Role.ADMIN):
                raise CannotTransferToNonAdmin(organization=org, user=new_owner)

            locked = {}
            for membership in sorted((old, candidate), key=lambda m: m.user_id):
                locked[membership.id] = await tx.lock_membership(membership.id)
            old, candidate = locked[old.id], locked[candidate.id]
            if old is None or not old.is_owner:
                raise NoOwnerPresent(organization=org)
            if candidate is None:
                raise CannotTransferToNonMember(organization=org, user=new_owner)
            if not roles.at_least(candidate.role, Role.ADMIN):
                raise CannotTransferToNonAdmin(organization=org, user=new_owner)

            # Demote first so the single-owner index never sees two owners
            old = await tx.update_membership_role(old.id, Role.ADMIN.value)
            candidate = await tx.update_membership_role(candidate.id, Role.OWNER.value)

        logger.info("Transferred ownership of %s to user %s", org.id, new_owner_id)
        await self.tenancy.events.dispatch(
            Event.OWNERSHIP_TRANSFERRED,
            organization=org,
            old_owner=old,
            new_owner=candidate,
            changed_by=transferred_by,
        )
        return candidate

    async def leave(self, user: Any, organization: Any) -> Optional[Membership]:
        """
        Leave an organization.

        Returns:
            The removed membership, or None if the user was not a member

        Raises:
            CannotLeaveAsLastOwner: If the user is the owner
            CannotLeaveLastOrganization: If ``require_organization`` is on
                and this is the user's last organization
        """
        user_id = id_of(user)
        async with self.store.transaction() as tx:
            org = await self._require(tx, organization, lock=True)
            membership = await tx.get_membership(org.id, user_id)
            if membership is not None:
                membership = await tx.lock_membership(membership.id)
            if membership is None:
                return None
            if membership.is_owner:
                raise CannotLeaveAsLastOwner(organization=org, user=user)
            if self.tenancy.config.require_organization:
                if await tx.count_memberships(user_id=user_id) <= 1:
                    raise CannotLeaveLastOrganization(organization=org, user=user)
            await tx.delete_membership(membership.id)

        await self.tenancy.events.dispatch(
            Event.MEMBER_REMOVED,
            organization=org,
            membership=membership,
            user=user,
            removed_by=user,
        )
        return membership

    # Invitations

    async def send_invite(
        self,
        organization: Any,
        email: str,
        invited_by: Any,
        role: Optional[Union[Role, str]] = None,
    ) -> "Invitation":
        """Invite an email address to the organization (see InvitationManager.send)."""
        return await self.tenancy.invites.send(organization, email, invited_by=invited_by, role=role)
