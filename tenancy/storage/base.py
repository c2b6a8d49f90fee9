"""
Persistence contract for Tenancy.

The core never talks to a database directly. It opens a transaction on a
Store, locks the rows it is about to mutate, re-reads them under the lock,
and relies on the store's unique constraints as the backstop against races.

Lock order used by every multi-row operation:
organization -> membership / invitation rows (ascending user id for two
memberships). Stores must hold row locks until the transaction ends.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Iterable, List, Optional
from uuid import UUID

from ..errors import StoreError, UniqueViolation  # noqa: F401
from ..invitations.models import Invitation
from ..organizations.models import Membership, Organization

# Constraint names shared by all stores
ORGANIZATION_SLUG = "uq_organizations_slug"
MEMBERSHIP_USER_ORG = "uq_memberships_user_org"
MEMBERSHIP_SINGLE_OWNER = "uq_memberships_single_owner"
INVITATION_TOKEN = "uq_invitations_token"
INVITATION_OPEN_EMAIL = "uq_invitations_open_email"


class StoreTransaction(ABC):
    """
    Unit of work handed out by ``Store.transaction()``.

    ``lock_*`` methods take an exclusive row lock held until the transaction
    ends and return the freshly read row (None if it no longer exists).
    Insert and update methods raise UniqueViolation on constraint collisions;
    after that the transaction is rolled back by the store, so callers
    resolve races in a new transaction.
    """

    # Row locks

    @abstractmethod
    async def lock_organization(self, organization_id: UUID) -> Optional[Organization]:
        ...

    @abstractmethod
    async def lock_membership(self, membership_id: UUID) -> Optional[Membership]:
        ...

    @abstractmethod
    async def lock_invitation(self, invitation_id: UUID) -> Optional[Invitation]:
        ...

    # Organizations

    @abstractmethod
    async def insert_organization(self, organization: Organization) -> Organization:
        ...

    @abstractmethod
    async def get_organization(self, organization_id: UUID) -> Optional[Organization]:
        ...

    @abstractmethod
    async def get_organization_by_slug(self, slug: str) -> Optional[Organization]:
        ...

    @abstractmethod
    async def slug_exists(self, slug: str) -> bool:
        ...

    @abstractmethod
    async def list_organizations(
        self,
        user_id: Optional[UUID] = None,
        roles: Optional[Iterable[str]] = None,
    ) -> List[Organization]:
        """Organizations, optionally only those where ``user_id`` holds one of ``roles``."""

    @abstractmethod
    async def delete_organization(self, organization_id: UUID) -> bool:
        """Delete an organization with its memberships and invitations."""

    # Memberships

    @abstractmethod
    async def insert_membership(self, membership: Membership) -> Membership:
        ...

    @abstractmethod
    async def get_membership(self, organization_id: UUID, user_id: UUID) -> Optional[Membership]:
        ...

    @abstractmethod
    async def get_membership_by_id(self, membership_id: UUID) -> Optional[Membership]:
        ...

    @abstractmethod
    async def get_owner_membership(self, organization_id: UUID) -> Optional[Membership]:
        ...

    @abstractmethod
    async def list_memberships(
        self,
        organization_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        roles: Optional[Iterable[str]] = None,
    ) -> List[Membership]:
        """Memberships ordered by creation time."""

    @abstractmethod
    async def count_memberships(
        self,
        organization_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        roles: Optional[Iterable[str]] = None,
    ) -> int:
        ...

    @abstractmethod
    async def update_membership_role(self, membership_id: UUID, role: str) -> Membership:
        ...

    @abstractmethod
    async def delete_membership(self, membership_id: UUID) -> bool:
        ...

    # Invitations

    @abstractmethod
    async def insert_invitation(self, invitation: Invitation) -> Invitation:
        ...

    @abstractmethod
    async def get_invitation(self, invitation_id: UUID) -> Optional[Invitation]:
        ...

    @abstractmethod
    async def get_invitation_by_token(self, token: str) -> Optional[Invitation]:
        ...

    @abstractmethod
    async def find_open_invitation(self, organization_id: UUID, email: str) -> Optional[Invitation]:
        """The non-accepted invitation for (organization, lower(email)), if any."""

    @abstractmethod
    async def list_invitations(
        self,
        organization_id: Optional[UUID] = None,
        email: Optional[str] = None,
    ) -> List[Invitation]:
        """Invitations ordered newest first."""

    @abstractmethod
    async def token_exists(self, token: str) -> bool:
        ...

    @abstractmethod
    async def update_invitation(self, invitation_id: UUID, **fields) -> Invitation:
        """Update ``token``, ``expires_at``, ``accepted_at``, ``role`` or ``invited_by``."""

    @abstractmethod
    async def delete_invitation(self, invitation_id: UUID) -> bool:
        ...


INVITATION_UPDATABLE_FIELDS = frozenset({"token", "expires_at", "accepted_at", "role", "invited_by"})


class Store(ABC):
    """Transactional persistence collaborator."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[StoreTransaction]:
        """Open a transaction: commit on normal exit, roll back on error."""

    async def close(self) -> None:
        """Release connections and other resources."""
