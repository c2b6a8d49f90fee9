"""
In-process store for Tenancy.

Keeps rows in dictionaries and emulates the parts of a relational database
the core depends on:

- per-row exclusive locks (``asyncio.Lock``) held until the transaction ends
- writes staged per transaction and invisible to others until commit
- unique constraints checked at write time; a write that collides with a
  row staged by another open transaction waits for that transaction to
  finish and then re-checks, like a unique index in PostgreSQL

There is no global lock. Suitable for tests and single-process hosts.
"""

import asyncio
import weakref
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Hashable, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from ..errors import InvitationNotFound, MembershipNotFound
from ..invitations.models import Invitation
from ..organizations.models import Membership, Organization
from ..roles.models import Role
from ..utils.clock import normalize_email, utcnow
from .base import (
    INVITATION_OPEN_EMAIL,
    INVITATION_TOKEN,
    INVITATION_UPDATABLE_FIELDS,
    MEMBERSHIP_SINGLE_OWNER,
    MEMBERSHIP_USER_ORG,
    ORGANIZATION_SLUG,
    Store,
    StoreError,
    StoreTransaction,
    UniqueViolation,
)

logger = logging.getLogger(__name__)

ORGANIZATIONS = "organizations"
MEMBERSHIPS = "memberships"
INVITATIONS = "invitations"

_DELETED = object()

KeyFn = Callable[[Any], Optional[Hashable]]

CONSTRAINTS: Dict[str, List[Tuple[str, KeyFn]]] = {
    ORGANIZATIONS: [
        (ORGANIZATION_SLUG, lambda o: o.slug),
    ],
    MEMBERSHIPS: [
        (MEMBERSHIP_USER_ORG, lambda m: (m.user_id, m.organization_id)),
        (
            MEMBERSHIP_SINGLE_OWNER,
            lambda m: m.organization_id if m.role == Role.OWNER.value else None,
        ),
    ],
    INVITATIONS: [
        (INVITATION_TOKEN, lambda i: i.token),
        (
            INVITATION_OPEN_EMAIL,
            lambda i: (i.organization_id, i.email.lower()) if i.accepted_at is None else None,
        ),
    ],
}


def _role_filter(roles: Optional[Iterable[str]]) -> Optional[Set[str]]:
    return set(roles) if roles is not None else None


class MemoryTransaction(StoreTransaction):
    """Transaction over a MemoryStore."""

    def __init__(self, store: "MemoryStore") -> None:
        self._store = store
        self._staged: Dict[str, Dict[UUID, Any]] = {name: {} for name in CONSTRAINTS}
        self._held_keys: Set[Tuple[str, UUID]] = set()
        self._held_locks: List[asyncio.Lock] = []
        self._finished = asyncio.Event()

    # Bookkeeping

    async def _acquire(self, table: str, row_id: UUID) -> None:
        key = (table, row_id)
        if key in self._held_keys:
            return
        lock = self._store._lock_for(key)
        await lock.acquire()
        self._held_keys.add(key)
        self._held_locks.append(lock)

    def _finish(self, commit: bool) -> None:
        if commit:
            for table, rows in self._staged.items():
                committed = self._store._tables[table]
                for row_id, row in rows.items():
                    if row is _DELETED:
                        committed.pop(row_id, None)
                    else:
                        committed[row_id] = row

        self._staged = {name: {} for name in CONSTRAINTS}
        for lock in reversed(self._held_locks):
            lock.release()
        self._held_locks.clear()
        self._held_keys.clear()
        self._store._active.discard(self)
        self._finished.set()

    def _get(self, table: str, row_id: UUID) -> Any:
        staged = self._staged[table]
        if row_id in staged:
            row = staged[row_id]
            return None if row is _DELETED else row
        return self._store._tables[table].get(row_id)

    def _rows(self, table: str) -> List[Any]:
        merged = dict(self._store._tables[table])
        for row_id, row in self._staged[table].items():
            if row is _DELETED:
                merged.pop(row_id, None)
            else:
                merged[row_id] = row
        return list(merged.values())

    def _find_blocker(self, table: str, row: Any) -> Optional["MemoryTransaction"]:
        """
        Return another open transaction that must finish before ``row`` can
        be checked, or raise UniqueViolation if ``row`` collides with a row
        visible to this transaction.
        """
        committed = self._store._tables[table]
        for name, key_fn in CONSTRAINTS[table]:
            key = key_fn(row)
            if key is None:
                continue

            for other in self._store._active:
                if other is self:
                    continue
                for row_id, staged in other._staged[table].items():
                    if row_id == row.id:
                        continue
                    if staged is not _DELETED and key_fn(staged) == key:
                        return other
                    original = committed.get(row_id)
                    if original is not None and key_fn(original) == key:
                        return other

            for existing in self._rows(table):
                if existing.id != row.id and key_fn(existing) == key:
                    raise UniqueViolation(name)
        return None

    async def _stage(self, table: str, row: Any, insert: bool = False) -> Any:
        while True:
            if insert and self._get(table, row.id) is not None:
                raise UniqueViolation(f"{table}_pkey")
            blocker = self._find_blocker(table, row)
            if blocker is None:
                break
            await blocker._finished.wait()

        self._staged[table][row.id] = row
        return row.model_copy()

    async def _delete(self, table: str, row_id: UUID) -> bool:
        await self._acquire(table, row_id)
        if self._get(table, row_id) is None:
            return False
        self._staged[table][row_id] = _DELETED
        return True

    def _copy(self, row: Any) -> Any:
        return row.model_copy() if row is not None else None

    # Row locks

    async def lock_organization(self, organization_id: UUID) -> Optional[Organization]:
        await self._acquire(ORGANIZATIONS, organization_id)
        return self._copy(self._get(ORGANIZATIONS, organization_id))

    async def lock_membership(self, membership_id: UUID) -> Optional[Membership]:
        await self._acquire(MEMBERSHIPS, membership_id)
        return self._copy(self._get(MEMBERSHIPS, membership_id))

    async def lock_invitation(self, invitation_id: UUID) -> Optional[Invitation]:
        await self._acquire(INVITATIONS, invitation_id)
        return self._copy(self._get(INVITATIONS, invitation_id))

    # Organizations

    async def insert_organization(self, organization: Organization) -> Organization:
        return await self._stage(ORGANIZATIONS, organization.model_copy(), insert=True)

    async def get_organization(self, organization_id: UUID) -> Optional[Organization]:
        return self._copy(self._get(ORGANIZATIONS, organization_id))

    async def get_organization_by_slug(self, slug: str) -> Optional[Organization]:
        for org in self._rows(ORGANIZATIONS):
            if org.slug == slug:
                return self._copy(org)
        return None

    async def slug_exists(self, slug: str) -> bool:
        return await self.get_organization_by_slug(slug) is not None

    async def list_organizations(
        self,
        user_id: Optional[UUID] = None,
        roles: Optional[Iterable[str]] = None,
    ) -> List[Organization]:
        orgs = self._rows(ORGANIZATIONS)
        if user_id is not None:
            wanted = _role_filter(roles)
            org_ids = {
                m.organization_id
                for m in self._rows(MEMBERSHIPS)
                if m.user_id == user_id and (wanted is None or m.role in wanted)
            }
            orgs = [o for o in orgs if o.id in org_ids]
        orgs.sort(key=lambda o: (o.created_at, str(o.id)))
        return [o.model_copy() for o in orgs]

    async def delete_organization(self, organization_id: UUID) -> bool:
        await self._acquire(ORGANIZATIONS, organization_id)
        if self._get(ORGANIZATIONS, organization_id) is None:
            return False

        memberships = sorted(
            (m for m in self._rows(MEMBERSHIPS) if m.organization_id == organization_id),
            key=lambda m: str(m.id),
        )
        for membership in memberships:
            await self._delete(MEMBERSHIPS, membership.id)

        invitations = sorted(
            (i for i in self._rows(INVITATIONS) if i.organization_id == organization_id),
            key=lambda i: str(i.id),
        )
        for invitation in invitations:
            await self._delete(INVITATIONS, invitation.id)

        return await self._delete(ORGANIZATIONS, organization_id)

    # Memberships

    async def insert_membership(self, membership: Membership) -> Membership:
        if self._get(ORGANIZATIONS, membership.organization_id) is None:
            raise StoreError(f"Organization {membership.organization_id} does not exist")
        return await self._stage(MEMBERSHIPS, membership.model_copy(), insert=True)

    async def get_membership(self, organization_id: UUID, user_id: UUID) -> Optional[Membership]:
        for m in self._rows(MEMBERSHIPS):
            if m.organization_id == organization_id and m.user_id == user_id:
                return m.model_copy()
        return None

    async def get_membership_by_id(self, membership_id: UUID) -> Optional[Membership]:
        return self._copy(self._get(MEMBERSHIPS, membership_id))

    async def get_owner_membership(self, organization_id: UUID) -> Optional[Membership]:
        for m in self._rows(MEMBERSHIPS):
            if m.organization_id == organization_id and m.role == Role.OWNER.value:
                return m.model_copy()
        return None

    def _filter_memberships(
        self,
        organization_id: Optional[UUID],
        user_id: Optional[UUID],
        roles: Optional[Iterable[str]],
    ) -> List[Membership]:
        wanted = _role_filter(roles)
        rows = [
            m
            for m in self._rows(MEMBERSHIPS)
            if (organization_id is None or m.organization_id == organization_id)
            and (user_id is None or m.user_id == user_id)
            and (wanted is None or m.role in wanted)
        ]
        rows.sort(key=lambda m: (m.created_at, str(m.id)))
        return rows

    async def list_memberships(
        self,
        organization_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        roles: Optional[Iterable[str]] = None,
    ) -> List[Membership]:
        return [m.model_copy() for m in self._filter_memberships(organization_id, user_id, roles)]

    async def count_memberships(
        self,
        organization_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        roles: Optional[Iterable[str]] = None,
    ) -> int:
        return len(self._filter_memberships(organization_id, user_id, roles))

    async def update_membership_role(self, membership_id: UUID, role: str) -> Membership:
        await self._acquire(MEMBERSHIPS, membership_id)
        current = self._get(MEMBERSHIPS, membership_id)
        if current is None:
            raise MembershipNotFound(f"Membership not found: {membership_id}")
        updated = current.model_copy(update={"role": role, "updated_at": utcnow()})
        return await self._stage(MEMBERSHIPS, updated)

    async def delete_membership(self, membership_id: UUID) -> bool:
        return await self._delete(MEMBERSHIPS, membership_id)

    # Invitations

    async def insert_invitation(self, invitation: Invitation) -> Invitation:
        if self._get(ORGANIZATIONS, invitation.organization_id) is None:
            raise StoreError(f"Organization {invitation.organization_id} does not exist")
        return await self._stage(INVITATIONS, invitation.model_copy(), insert=True)

    async def get_invitation(self, invitation_id: UUID) -> Optional[Invitation]:
        return self._copy(self._get(INVITATIONS, invitation_id))

    async def get_invitation_by_token(self, token: str) -> Optional[Invitation]:
        for inv in self._rows(INVITATIONS):
            if inv.token == token:
                return inv.model_copy()
        return None

    async def find_open_invitation(self, organization_id: UUID, email: str) -> Optional[Invitation]:
        address = normalize_email(email)
        for inv in self._rows(INVITATIONS):
            if (
                inv.organization_id == organization_id
                and inv.email.lower() == address
                and inv.accepted_at is None
            ):
                return inv.model_copy()
        return None

    async def list_invitations(
        self,
        organization_id: Optional[UUID] = None,
        email: Optional[str] = None,
    ) -> List[Invitation]:
        address = normalize_email(email) if email is not None else None
        rows = [
            inv
            for inv in self._rows(INVITATIONS)
            if (organization_id is None or inv.organization_id == organization_id)
            and (address is None or inv.email.lower() == address)
        ]
        rows.sort(key=lambda inv: (inv.created_at, str(inv.id)), reverse=True)
        return [inv.model_copy() for inv in rows]

    async def token_exists(self, token: str) -> bool:
        return await self.get_invitation_by_token(token) is not None

    async def update_invitation(self, invitation_id: UUID, **fields) -> Invitation:
        unknown = set(fields) - INVITATION_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update invitation fields: {', '.join(sorted(unknown))}")

        await self._acquire(INVITATIONS, invitation_id)
        current = self._get(INVITATIONS, invitation_id)
        if current is None:
            raise InvitationNotFound(f"Invitation not found: {invitation_id}")
        updated = Invitation.model_validate({**current.model_dump(), **fields})
        return await self._stage(INVITATIONS, updated)

    async def delete_invitation(self, invitation_id: UUID) -> bool:
        return await self._delete(INVITATIONS, invitation_id)


class MemoryStore(Store):
    """
    Dictionary-backed store with row locks and unique constraints.

    Example:
        ```python
        store = MemoryStore()
        tenancy = Tenancy(config=TenancyConfig(), store=store)
        ```
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[UUID, Any]] = {name: {} for name in CONSTRAINTS}
        # Entries disappear once no transaction holds or awaits the lock
        self._locks: "weakref.WeakValueDictionary[Tuple[str, UUID], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._active: Set[MemoryTransaction] = set()

    def _lock_for(self, key: Tuple[str, UUID]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryTransaction]:
        tx = MemoryTransaction(self)
        self._active.add(tx)
        try:
            yield tx
        except BaseException:
            tx._finish(commit=False)
            raise
        tx._finish(commit=True)

    async def close(self) -> None:
        self._active.clear()

    def clear(self) -> None:
        """Drop all rows (tests)."""
        for rows in self._tables.values():
            rows.clear()
