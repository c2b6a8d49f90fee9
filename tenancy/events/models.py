"""
Tenancy event models.

Lifecycle events and the immutable context handed to listeners.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from ..invitations.models import Invitation
from ..organizations.models import Membership, Organization


class Event(str, Enum):
    """Lifecycle events emitted by the core."""

    ORGANIZATION_CREATED = "organization_created"
    MEMBER_INVITED = "member_invited"
    MEMBER_JOINED = "member_joined"
    MEMBER_REMOVED = "member_removed"
    ROLE_CHANGED = "role_changed"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"


class DispatchMode(str, Enum):
    """How listener failures are treated."""

    # Errors are logged and swallowed
    ISOLATED = "isolated"
    # Errors propagate and abort the triggering operation
    STRICT = "strict"


class CallbackContext(BaseModel):
    """
    Immutable payload passed to event listeners.

    Different events populate different fields:
    - organization_created: organization, user
    - member_invited: organization, invitation, invited_by
    - member_joined: organization, membership, user
    - member_removed: organization, membership, user, removed_by
    - role_changed: organization, membership, old_role, new_role, changed_by
    - ownership_transferred: organization, old_owner, new_owner
    """

    event: Event
    organization: Optional[Organization] = None
    user: Optional[Any] = None
    membership: Optional[Membership] = None
    invitation: Optional[Invitation] = None
    invited_by: Optional[Any] = None
    removed_by: Optional[Any] = None
    changed_by: Optional[Any] = None
    old_role: Optional[str] = None
    new_role: Optional[str] = None
    old_owner: Optional[Membership] = None
    new_owner: Optional[Membership] = None
    metadata: Mapping[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @field_validator("metadata")
    @classmethod
    def _read_only(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(v))

    def is_event(self, event: "Event | str") -> bool:
        return self.event == Event(event)

    def to_dict(self) -> Dict[str, Any]:
        """Field mapping with None values removed."""
        data: Dict[str, Any] = {}
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is None:
                continue
            if name == "metadata":
                if not value:
                    continue
                value = dict(value)
            data[name] = value
        return data
