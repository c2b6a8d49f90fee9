"""
Tenancy - multi-tenant organizations, memberships and invitations.

Organizations with a single owner, hierarchical roles, and email
invitations, with the invariants enforced under concurrent access.

Example:
    ```python
    from tenancy import Role, Tenancy

    tenancy = await Tenancy.create()

    # Creator becomes the owner
    org = await tenancy.orgs.create(owner=user, name="Acme Corp")

    # Invite by email, accept by token
    invite = await tenancy.invites.send(org, "alice@example.com", invited_by=user, role=Role.ADMIN)
    result = await tenancy.invites.accept_by_token(invite.token, alice)

    # Permission checks
    if await tenancy.memberships.has_permission(alice, "invite_members", org):
        ...

    # Ownership moves only by transfer
    await tenancy.orgs.transfer_ownership(org, alice)

    # Lifecycle events
    tenancy.events.on(Event.MEMBER_JOINED, lambda ctx: print(ctx.user.email))
    ```
"""

from .client import Tenancy
from .config import TenancyConfig, load_config
from .errors import (
    AlreadyAMember,
    AuthorizationError,
    CannotAcceptAsOwner,
    CannotDemoteOwner,
    CannotHaveMultipleOwners,
    CannotInviteAsOwner,
    CannotLeaveAsLastOwner,
    CannotLeaveLastOrganization,
    CannotPromoteToOwner,
    CannotRemoveOwner,
    CannotTransferToNonAdmin,
    CannotTransferToNonMember,
    ConfigurationError,
    EmailMismatch,
    InvalidRole,
    InvalidRoleChange,
    InvariantViolation,
    InvitationAlreadyAccepted,
    InvitationExpired,
    InvitationNotFound,
    InvitationStateError,
    MembershipNotFound,
    NoOwnerPresent,
    NotAMember,
    NotAuthorized,
    OrganizationLimitReached,
    OrganizationNotFound,
    StoreError,
    TenancyError,
    UniqueViolation,
)
from .events import CallbackContext, DispatchMode, Event, EventDispatcher, WebhookListener
from .invitations import (
    Invitation,
    InvitationAcceptanceFailure,
    InvitationAcceptanceResult,
    InvitationSender,
    InvitationStatus,
    SupabaseInvitationSender,
)
from .invitations.invites import InvitationManager
from .organizations import Membership, Organization
from .organizations.members import MembershipManager
from .organizations.orgs import OrganizationManager
from .roles import HIERARCHY, Role, RoleDefinition, RoleRegistry, resolve_permissions
from .storage import MemoryStore, SQLStore, Store
from .users import User, UserLike

__version__ = "0.1.0"

__all__ = [
    # Main client
    "Tenancy",
    "TenancyConfig",
    "load_config",
    # Roles
    "Role",
    "RoleDefinition",
    "RoleRegistry",
    "resolve_permissions",
    "HIERARCHY",
    # Models
    "Organization",
    "Membership",
    "Invitation",
    "InvitationStatus",
    "InvitationAcceptanceResult",
    "InvitationAcceptanceFailure",
    "User",
    "UserLike",
    # Managers
    "OrganizationManager",
    "MembershipManager",
    "InvitationManager",
    # Events
    "Event",
    "DispatchMode",
    "CallbackContext",
    "EventDispatcher",
    "WebhookListener",
    # Delivery and storage
    "InvitationSender",
    "SupabaseInvitationSender",
    "Store",
    "MemoryStore",
    "SQLStore",
    # Errors
    "TenancyError",
    "ConfigurationError",
    "AuthorizationError",
    "NotAMember",
    "NotAuthorized",
    "InvariantViolation",
    "CannotHaveMultipleOwners",
    "CannotDemoteOwner",
    "CannotPromoteToOwner",
    "CannotRemoveOwner",
    "CannotTransferToNonMember",
    "CannotTransferToNonAdmin",
    "NoOwnerPresent",
    "CannotLeaveAsLastOwner",
    "CannotLeaveLastOrganization",
    "InvalidRoleChange",
    "OrganizationLimitReached",
    "InvitationStateError",
    "InvitationExpired",
    "InvitationAlreadyAccepted",
    "EmailMismatch",
    "CannotAcceptAsOwner",
    "CannotInviteAsOwner",
    "AlreadyAMember",
    "InvalidRole",
    "OrganizationNotFound",
    "MembershipNotFound",
    "InvitationNotFound",
    "StoreError",
    "UniqueViolation",
]
