"""
Invitation management for Tenancy.

The invitation flow:
1. An admin invites an email address to an organization at a role
2. A unique token is generated and the invitation is stored
3. The sender delivers the acceptance link in the background
4. The invited user accepts by token; a membership is created and the
   invitation is marked accepted in the same transaction

Sending is idempotent per (organization, email): while an invitation is
pending, sending again returns it. An expired invitation is refreshed in
place with a new token and expiry.
"""

import asyncio
import logging
import secrets
from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Optional, Set, Tuple, Union
from uuid import uuid4

from ..errors import (
    AlreadyAMember,
    CannotAcceptAsOwner,
    CannotInviteAsOwner,
    EmailMismatch,
    InvalidRole,
    InvitationAlreadyAccepted,
    InvitationExpired,
    InvitationNotFound,
    OrganizationNotFound,
    UniqueViolation,
)
from ..events.models import DispatchMode, Event
from ..organizations.members import authorize
from ..organizations.models import Membership, Organization
from ..roles.models import Role, role_name
from ..storage.base import INVITATION_OPEN_EMAIL, MEMBERSHIP_USER_ORG
from ..utils.clock import normalize_email, utcnow
from ..utils.ids import email_of, id_of
from .models import (
    AcceptanceOutcome,
    Invitation,
    InvitationAcceptanceFailure,
    InvitationAcceptanceResult,
)

if TYPE_CHECKING:
    from ..client import Tenancy

logger = logging.getLogger(__name__)

INVITE_PERMISSION = "invite_members"


def _email_matches(invitation: Invitation, user: Any) -> bool:
    # Bare ids carry no address to compare
    if not hasattr(user, "email"):
        return True
    return invitation.for_email(user.email)


class InvitationManager:
    """
    Manages organization invitation operations.

    Example:
        ```python
        invite = await tenancy.invites.send(org, "new@example.com", invited_by=admin)

        # Later, when the invited user signs in
        result = await tenancy.invites.accept_by_token(token, current_user)
        if result.success:
            print(result.membership.role)
        else:
            print(result.reason)
        ```
    """

    def __init__(self, tenancy: "Tenancy") -> None:
        """
        Initialize InvitationManager.

        Args:
            tenancy: Tenancy client instance
        """
        self.tenancy = tenancy
        self._pending: Set[asyncio.Task] = set()

    @property
    def store(self):
        return self.tenancy.store

    async def _generate_token(self, tx) -> str:
        """Generate a secure random token not used by any invitation."""
        while True:
            token = secrets.token_urlsafe(32)
            if not await tx.token_exists(token):
                return token

    def _expiry(self, now: datetime) -> Optional[datetime]:
        expiry = self.tenancy.config.invitation_expiry
        return now + expiry if expiry else None

    async def _email_is_member(self, tx, organization: Organization, address: str) -> bool:
        memberships = await tx.list_memberships(organization_id=organization.id)
        return any(m.email == address for m in memberships)

    # Sending

    async def send(
        self,
        organization: Any,
        email: str,
        invited_by: Any,
        role: Optional[Union[Role, str]] = None,
    ) -> Invitation:
        """
        Invite an email address to join an organization.

        Args:
            organization: Organization (or its id)
            email: Address to invite (normalized to lowercase)
            invited_by: Acting user; needs the ``invite_members`` permission
            role: Role granted on acceptance (default_invitation_role if None)

        Returns:
            The pending invitation (existing one if already invited)

        Raises:
            ValueError: If no inviter is given or the email is invalid
            NotAMember / NotAuthorized: If the inviter cannot invite
            CannotInviteAsOwner: If ``role`` is owner
            InvalidRole: If ``role`` is not in the hierarchy
            AlreadyAMember: If the email belongs to a current member
            Exception: Whatever a member_invited listener raised (veto)
        """
        if invited_by is None:
            raise ValueError("invited_by is required to send an invitation")
        address = normalize_email(email)
        if "@" not in address:
            raise ValueError(f"Invalid email address: {email!r}")

        name = role_name(role) or self.tenancy.config.default_invitation_role
        roles = self.tenancy.roles
        inviter_id = id_of(invited_by)

        async with self.store.transaction() as tx:
            org = await tx.get_organization(id_of(organization))
            if org is None:
                raise OrganizationNotFound(f"Organization not found: {id_of(organization)}")
            await authorize(tx, roles, org, invited_by, INVITE_PERMISSION)
            if name == Role.OWNER.value:
                raise CannotInviteAsOwner(organization=org)
            if not roles.is_valid(name):
                raise InvalidRole(f"Invalid role: {role}")

            existing = await tx.find_open_invitation(org.id, address)
            if existing is not None and existing.is_pending():
                return existing
            if await self._email_is_member(tx, org, address):
                raise AlreadyAMember(organization=org)
            token = await self._generate_token(tx)

        now = utcnow()
        if existing is not None:
            candidate = existing.model_copy(
                update={
                    "token": token,
                    "expires_at": self._expiry(now),
                    "role": name,
                    "invited_by": inviter_id,
                }
            )
        else:
            candidate = Invitation(
                organization_id=org.id,
                email=address,
                token=token,
                role=name,
                invited_by=inviter_id,
                expires_at=self._expiry(now),
                created_at=now,
            )

        # Listeners may veto before anything is written
        await self.tenancy.events.dispatch(
            Event.MEMBER_INVITED,
            mode=DispatchMode.STRICT,
            organization=org,
            invitation=candidate,
            invited_by=invited_by,
            metadata={"email": address, "role": name},
        )

        try:
            async with self.store.transaction() as tx:
                await self._recheck(tx, org, invited_by, address)
                invitation, written = await self._write(tx, existing, candidate, now)
        except UniqueViolation as e:
            if e.constraint != INVITATION_OPEN_EMAIL:
                raise
            logger.info("Concurrent invitation of %s to %s, returning existing", address, org.id)
            async with self.store.transaction() as tx:
                invitation = await tx.find_open_invitation(org.id, address)
            if invitation is None:
                raise
            return invitation

        if written:
            await self._deliver(invitation, org)
        return invitation

    async def _recheck(self, tx, organization: Organization, invited_by: Any, address: str) -> None:
        """Repeat the send checks under the organization lock before writing."""
        org = await tx.lock_organization(organization.id)
        if org is None:
            raise OrganizationNotFound(f"Organization not found: {organization.id}")
        await authorize(tx, self.tenancy.roles, org, invited_by, INVITE_PERMISSION)
        if await self._email_is_member(tx, org, address):
            raise AlreadyAMember(organization=org)

    async def _write(
        self,
        tx,
        existing: Optional[Invitation],
        candidate: Invitation,
        now: datetime,
    ) -> Tuple[Invitation, bool]:
        if existing is None:
            return await tx.insert_invitation(candidate), True

        current = await tx.lock_invitation(existing.id)
        if current is None or current.is_accepted():
            # Gone or accepted since it was read: the address gets a fresh row
            fresh = candidate.model_copy(update={"id": uuid4(), "created_at": now})
            return await tx.insert_invitation(fresh), True
        if current.is_pending():
            # Someone refreshed it concurrently
            return current, False

        refreshed = await tx.update_invitation(
            current.id,
            token=candidate.token,
            expires_at=candidate.expires_at,
            role=candidate.role,
            invited_by=candidate.invited_by,
        )
        return refreshed, True

    # Delivery

    async def _deliver(self, invitation: Invitation, organization: Organization) -> None:
        sender = self.tenancy.sender
        if sender is None:
            logger.debug("No invitation sender configured, %s not delivered", invitation.id)
            return

        if not self.tenancy.config.deliver_invitations_in_background:
            await self._send_safely(sender, invitation, organization)
            return

        task = asyncio.create_task(self._send_safely(sender, invitation, organization))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_safely(self, sender, invitation: Invitation, organization: Organization) -> None:
        try:
            await sender.send(invitation, organization)
        except Exception as e:
            # Delivery is best-effort; the invitation stays valid
            logger.warning(
                "Failed to deliver invitation %s to %s: %s", invitation.id, invitation.email, e
            )
            logger.debug("Delivery traceback", exc_info=True)

    async def flush(self) -> None:
        """Wait for all background deliveries to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # Acceptance

    async def _lock(self, tx, invitation: Any) -> Tuple[Organization, Invitation]:
        """Lock the invitation's organization, then the invitation itself."""
        invitation_id = id_of(invitation)
        snapshot = invitation if isinstance(invitation, Invitation) else await tx.get_invitation(invitation_id)
        if snapshot is None:
            raise InvitationNotFound(f"Invitation not found: {invitation_id}")

        org = await tx.lock_organization(snapshot.organization_id)
        if org is None:
            raise OrganizationNotFound(f"Organization not found: {snapshot.organization_id}")
        current = await tx.lock_invitation(invitation_id)
        if current is None:
            raise InvitationNotFound(f"Invitation not found: {invitation_id}")
        return org, current

    async def _accept(self, invitation: Any, user: Any, skip_email_check: bool) -> Tuple[Membership, bool]:
        user_id = id_of(user)
        async with self.store.transaction() as tx:
            org, current = await self._lock(tx, invitation)

            if not skip_email_check and not _email_matches(current, user):
                raise EmailMismatch(organization=org, user=user)

            if current.is_accepted():
                existing = await tx.get_membership(org.id, user_id)
                if existing is not None:
                    return existing, False
                raise InvitationAlreadyAccepted(organization=org, user=user)
            if current.is_expired():
                raise InvitationExpired(organization=org, user=user)
            if current.role == Role.OWNER.value:
                raise CannotAcceptAsOwner(organization=org, user=user)

            existing = await tx.get_membership(org.id, user_id)
            if existing is not None:
                await tx.update_invitation(current.id, accepted_at=utcnow())
                return existing, False

            membership = await tx.insert_membership(
                Membership(
                    user_id=user_id,
                    organization_id=org.id,
                    email=normalize_email(email_of(user)) or current.email,
                    role=current.role,
                    invited_by=current.invited_by,
                )
            )
            accepted = await tx.update_invitation(current.id, accepted_at=utcnow())

        await self.tenancy.events.dispatch(
            Event.MEMBER_JOINED,
            organization=org,
            membership=membership,
            user=user,
            invitation=accepted,
        )
        return membership, True

    async def accept(self, invitation: Any, user: Any, skip_email_check: bool = False) -> Membership:
        """
        Accept an invitation and create the membership.

        Accepting again returns the same membership. If the user joined
        through another path meanwhile, the invitation is marked accepted and
        the existing membership is returned.

        Args:
            invitation: Invitation (or its id)
            user: Accepting user
            skip_email_check: Skip matching the user's email (admin acceptance)

        Raises:
            ValueError: If no user is given
            EmailMismatch: If the invitation was sent to another address
            InvitationExpired: If the invitation has expired
            InvitationAlreadyAccepted: If accepted but the membership is gone
            CannotAcceptAsOwner: If the invitation carries the owner role
        """
        membership, _ = await self._accept_resolving_race(invitation, user, skip_email_check)
        return membership

    async def _accept_resolving_race(
        self, invitation: Any, user: Any, skip_email_check: bool
    ) -> Tuple[Membership, bool]:
        if user is None:
            raise ValueError("User is required to accept invitation")
        try:
            return await self._accept(invitation, user, skip_email_check)
        except UniqueViolation as e:
            if e.constraint != MEMBERSHIP_USER_ORG:
                raise
            logger.info("User %s joined concurrently, re-running acceptance", id_of(user))
            return await self._accept(invitation, user, skip_email_check)

    async def accept_by_token(
        self,
        token: Optional[str],
        user: Any,
        skip_email_check: bool = False,
    ) -> AcceptanceOutcome:
        """
        Accept an invitation by token without raising for expected failures.

        Returns:
            InvitationAcceptanceResult (status ``accepted`` or
            ``already_member``) or InvitationAcceptanceFailure with a reason
        """
        if user is None:
            return InvitationAcceptanceFailure(reason="missing_user")
        if not token:
            return InvitationAcceptanceFailure(reason="missing_token")

        invitation = await self.get_by_token(token)
        if invitation is None:
            return InvitationAcceptanceFailure(reason="invitation_not_found")
        if not invitation.is_accepted() and invitation.is_expired():
            return InvitationAcceptanceFailure(reason="invitation_expired", invitation=invitation)

        if not skip_email_check and not _email_matches(invitation, user):
            return InvitationAcceptanceFailure(reason="email_mismatch", invitation=invitation)

        try:
            membership, created = await self._accept_resolving_race(invitation, user, skip_email_check)
        except InvitationExpired:
            return InvitationAcceptanceFailure(reason="invitation_expired", invitation=invitation)
        except InvitationAlreadyAccepted:
            logger.warning(
                "Invitation %s accepted but no membership for user %s", invitation.id, id_of(user)
            )
            return InvitationAcceptanceFailure(
                reason="already_accepted_without_membership", invitation=invitation
            )
        except InvitationNotFound:
            return InvitationAcceptanceFailure(reason="invitation_not_found")

        refreshed = await self.get(invitation.id) or invitation
        return InvitationAcceptanceResult(
            status="accepted" if created else "already_member",
            invitation=refreshed,
            membership=membership,
        )

    # Maintenance

    async def resend(self, invitation: Any) -> Invitation:
        """
        Regenerate token and expiry, then deliver again.

        Raises:
            InvitationAlreadyAccepted: If the invitation was accepted
        """
        async with self.store.transaction() as tx:
            org, current = await self._lock(tx, invitation)
            if current.is_accepted():
                raise InvitationAlreadyAccepted("Cannot resend an accepted invitation", organization=org)
            updated = await tx.update_invitation(
                current.id,
                token=await self._generate_token(tx),
                expires_at=self._expiry(utcnow()),
            )

        await self._deliver(updated, org)
        return updated

    async def revoke(self, invitation: Any) -> bool:
        """
        Delete a pending or expired invitation.

        Raises:
            InvitationAlreadyAccepted: If the invitation was accepted
        """
        async with self.store.transaction() as tx:
            org, current = await self._lock(tx, invitation)
            if current.is_accepted():
                raise InvitationAlreadyAccepted("Cannot revoke an accepted invitation", organization=org)
            deleted = await tx.delete_invitation(current.id)

        logger.debug("Revoked invitation %s", current.id)
        return deleted

    # Queries

    async def get(self, invitation_id: Any) -> Optional[Invitation]:
        async with self.store.transaction() as tx:
            return await tx.get_invitation(id_of(invitation_id))

    async def get_by_token(self, token: str) -> Optional[Invitation]:
        async with self.store.transaction() as tx:
            return await tx.get_invitation_by_token(token)

    async def for_email(self, email: str, pending_only: bool = True) -> List[Invitation]:
        """Invitations addressed to ``email`` across organizations."""
        async with self.store.transaction() as tx:
            invitations = await tx.list_invitations(email=email)
        if pending_only:
            now = utcnow()
            invitations = [i for i in invitations if i.is_pending(now)]
        return invitations

    async def list_for_organization(self, organization: Any, pending_only: bool = False) -> List[Invitation]:
        async with self.store.transaction() as tx:
            invitations = await tx.list_invitations(organization_id=id_of(organization))
        if pending_only:
            now = utcnow()
            invitations = [i for i in invitations if i.is_pending(now)]
        return invitations
