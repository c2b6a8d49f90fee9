"""
Tenancy organization models.

Pydantic models for organizations and memberships.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from ..roles.models import Role
from ..utils.clock import ensure_utc, normalize_email, utcnow


class Organization(BaseModel):
    """
    Organization model - the tenant entity.

    Owns a set of memberships and invitations. A committed organization has
    exactly one owner membership.
    """

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9-]+$")

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {
        "from_attributes": True,
        "json_schema_extra": {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174000",
                "name": "Acme Corp",
                "slug": "acme-corp",
                "created_at": "2024-01-01T00:00:00Z",
                "updated_at": "2024-01-01T00:00:00Z",
            }
        },
    }

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Membership(BaseModel):
    """
    Membership model - the role-bearing link between a user and an organization.

    A user holds at most one membership per organization, and at most one
    membership per organization carries the owner role.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    organization_id: UUID
    email: Optional[str] = None
    role: str = Role.MEMBER.value
    invited_by: Optional[UUID] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {
        "from_attributes": True,
        "json_schema_extra": {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174000",
                "user_id": "456e7890-e89b-12d3-a456-426614174000",
                "organization_id": "789e0123-e89b-12d3-a456-426614174000",
                "email": "member@example.com",
                "role": "admin",
                "invited_by": None,
                "created_at": "2024-01-01T00:00:00Z",
                "updated_at": "2024-01-01T00:00:00Z",
            }
        },
    }

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v) or None

    @property
    def is_owner(self) -> bool:
        return self.role == Role.OWNER.value

    @property
    def is_admin(self) -> bool:
        """Admin role exactly (owners are not counted)."""
        return self.role == Role.ADMIN.value

    @property
    def is_member(self) -> bool:
        return self.role == Role.MEMBER.value

    @property
    def is_viewer(self) -> bool:
        return self.role == Role.VIEWER.value
