"""
Tenancy invitation models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from ..organizations.models import Membership
from ..roles.models import Role
from ..utils.clock import ensure_utc, normalize_email, utcnow


class InvitationStatus(str, Enum):
    """Derived invitation status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class Invitation(BaseModel):
    """
    Invitation model - a token-bearing offer for an email address to join
    an organization at a given role.

    Status is derived: accepted if ``accepted_at`` is set, otherwise expired
    once ``expires_at`` is reached, otherwise pending.
    """

    id: UUID = Field(default_factory=uuid4)
    organization_id: UUID
    email: str = Field(..., min_length=3, max_length=320)
    token: str = Field(..., min_length=16)
    role: str = Role.MEMBER.value
    invited_by: Optional[UUID] = None

    # Status
    accepted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {
        "from_attributes": True,
        "json_schema_extra": {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174000",
                "organization_id": "456e7890-e89b-12d3-a456-426614174000",
                "email": "newuser@example.com",
                "token": "abc123xyz789abc123xyz789",
                "role": "member",
                "invited_by": "789e0123-e89b-12d3-a456-426614174000",
                "accepted_at": None,
                "expires_at": "2024-01-08T00:00:00Z",
                "created_at": "2024-01-01T00:00:00Z",
            }
        },
    }

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        email = normalize_email(v)
        if "@" not in email:
            raise ValueError("email must be a valid email address")
        return email

    @field_validator("accepted_at", "expires_at", "created_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def is_accepted(self) -> bool:
        return self.accepted_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """An invitation whose expiry equals ``now`` is already expired."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def is_pending(self, now: Optional[datetime] = None) -> bool:
        return not self.is_accepted() and not self.is_expired(now)

    def status_at(self, now: Optional[datetime] = None) -> InvitationStatus:
        if self.is_accepted():
            return InvitationStatus.ACCEPTED
        if self.is_expired(now):
            return InvitationStatus.EXPIRED
        return InvitationStatus.PENDING

    @property
    def status(self) -> InvitationStatus:
        return self.status_at()

    def for_email(self, email: Optional[str]) -> bool:
        """Case-insensitive match against the invited address."""
        return self.email == normalize_email(email)

    def acceptance_url(self, base_url: str = "") -> str:
        return f"{base_url.rstrip('/')}/invitations/{self.token}"


class InvitationAcceptanceResult(BaseModel):
    """Successful outcome of accepting an invitation by token."""

    status: str = Field(..., pattern=r"^(accepted|already_member)$")
    invitation: Invitation
    membership: Membership

    @property
    def accepted(self) -> bool:
        """True if the invitation was freshly accepted."""
        return self.status == "accepted"

    @property
    def already_member(self) -> bool:
        return self.status == "already_member"

    @property
    def success(self) -> bool:
        return True


class InvitationAcceptanceFailure(BaseModel):
    """Failed outcome of accepting an invitation by token."""

    reason: str = Field(
        ...,
        pattern=(
            r"^(missing_user|missing_token|invitation_not_found|invitation_expired"
            r"|email_mismatch|already_accepted_without_membership)$"
        ),
    )
    invitation: Optional[Invitation] = None

    @property
    def success(self) -> bool:
        return False


AcceptanceOutcome = Union[InvitationAcceptanceResult, InvitationAcceptanceFailure]
