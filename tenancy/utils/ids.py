"""
Reference helpers.

Manager methods accept either model instances (anything with an ``id``) or
bare UUIDs for organizations, users, memberships and invitations.
"""

from typing import Any, Optional
from uuid import UUID

from .clock import normalize_email


def id_of(ref: Any) -> UUID:
    """Return the UUID behind a model, user object, UUID or UUID string."""
    if isinstance(ref, UUID):
        return ref
    if isinstance(ref, str):
        return UUID(ref)
    ref_id = getattr(ref, "id", None)
    if ref_id is None:
        raise ValueError(f"Expected an object with an id, got {ref!r}")
    return ref_id if isinstance(ref_id, UUID) else UUID(str(ref_id))


def email_of(user: Any) -> str:
    """The user's email, or an empty string when it has none."""
    return getattr(user, "email", None) or ""


def require_email(user: Any, email: Optional[str] = None) -> str:
    """
    The address a new membership is recorded under.

    An explicit ``email`` wins over the user's own. Memberships are matched
    against invitation addresses, so one of them must be present.

    Raises:
        ValueError: If neither ``email`` nor the user's email is set
    """
    address = normalize_email(email or email_of(user))
    if not address:
        raise ValueError(f"An email is required to add {user!r} as a member")
    return address
