"""
User identity seen by Tenancy.

Tenancy does not own users; the host supplies an opaque identity with at
least an ``id`` and an ``email``. Any object with those attributes works.
"""

from typing import Protocol, runtime_checkable
from uuid import UUID

from pydantic import BaseModel, EmailStr


@runtime_checkable
class UserLike(Protocol):
    """Anything with a UUID ``id`` and an ``email``."""

    id: UUID
    email: str


class User(BaseModel):
    """Minimal concrete user identity for hosts and tests."""

    id: UUID
    email: EmailStr

    model_config = {"from_attributes": True, "frozen": True}
