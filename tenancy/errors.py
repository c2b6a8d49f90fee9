"""
Tenancy error hierarchy.

Every error raised by the core derives from TenancyError so hosts can catch
the whole family in one place. The intermediate classes group errors by kind:

- AuthorizationError: the caller lacks standing in the organization
- InvariantViolation: the mutation would break a structural guarantee
- InvitationStateError: the invitation is not in an acceptable state
- ConfigurationError: invalid settings, raised when configuration is loaded
"""

from typing import Any, Optional


class TenancyError(Exception):
    """Base error for all tenancy errors."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        organization: Any = None,
        user: Any = None,
        **context: Any,
    ) -> None:
        super().__init__(message or self.default_message)
        self.organization = organization
        self.user = user
        self.context = context

    default_message = "Tenancy error"


class ConfigurationError(TenancyError):
    """Invalid configuration values."""

    default_message = "Invalid tenancy configuration"


# Authorization


class AuthorizationError(TenancyError):
    """The acting user lacks standing in the organization."""

    default_message = "Not authorized"


class NotAMember(AuthorizationError):
    """The acting user has no membership in the organization."""

    default_message = "You are not a member of this organization"


class NotAuthorized(AuthorizationError):
    """The acting user's role lacks the required permission."""

    default_message = "You don't have permission to perform this action"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        permission: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.permission = permission


# Structural invariants


class InvariantViolation(TenancyError):
    """The requested mutation would break an organization invariant."""

    default_message = "Operation would violate an organization invariant"


class CannotHaveMultipleOwners(InvariantViolation):
    default_message = "An organization can only have one owner. Use transfer_ownership instead."


class CannotDemoteOwner(InvariantViolation):
    default_message = "Cannot demote the owner. Transfer ownership first."


class CannotPromoteToOwner(InvariantViolation):
    default_message = "Cannot promote to owner. Use transfer_ownership instead."


class CannotRemoveOwner(InvariantViolation):
    default_message = "Cannot remove the owner. Transfer ownership first."


class CannotTransferToNonMember(InvariantViolation):
    default_message = "Ownership can only be transferred to an existing member"


class CannotTransferToNonAdmin(InvariantViolation):
    default_message = "Ownership can only be transferred to an admin"


class NoOwnerPresent(InvariantViolation):
    default_message = "Organization has no owner"


class CannotLeaveAsLastOwner(InvariantViolation):
    default_message = "The owner cannot leave the organization. Transfer ownership first."


class CannotLeaveLastOrganization(InvariantViolation):
    default_message = "You must belong to at least one organization"


class InvalidRoleChange(InvariantViolation):
    default_message = "Invalid role change"


class OrganizationLimitReached(InvariantViolation):
    default_message = "Organization limit reached"


# Invitations


class InvitationStateError(TenancyError):
    """The invitation cannot be used in its current state."""

    default_message = "Invitation cannot be used"


class InvitationExpired(InvitationStateError):
    default_message = "This invitation has expired"


class InvitationAlreadyAccepted(InvitationStateError):
    default_message = "This invitation has already been accepted"


class EmailMismatch(InvitationStateError):
    default_message = "This invitation was sent to a different email address"


class CannotAcceptAsOwner(InvitationStateError):
    default_message = (
        "Cannot accept invitation as owner. "
        "Invite as admin, then transfer ownership after joining."
    )


class CannotInviteAsOwner(InvitationStateError):
    default_message = "Cannot invite as owner. Invite as admin, then transfer ownership."


class AlreadyAMember(InvitationStateError):
    default_message = "This email already belongs to a member of the organization"


# Lookups and arguments


class InvalidRole(TenancyError, ValueError):
    """A role name outside the configured hierarchy."""

    default_message = "Invalid role"


class OrganizationNotFound(TenancyError, LookupError):
    default_message = "Organization not found"


class MembershipNotFound(TenancyError, LookupError):
    default_message = "Membership not found"


class InvitationNotFound(TenancyError, LookupError):
    default_message = "Invitation not found"


# Storage


class StoreError(TenancyError):
    """Persistence layer failure."""

    default_message = "Storage error"


class UniqueViolation(StoreError):
    """A write collided with a unique constraint."""

    default_message = "Unique constraint violated"

    def __init__(self, constraint: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Unique constraint violated: {constraint}")
        self.constraint = constraint
