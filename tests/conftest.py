"""
Pytest configuration and fixtures for Tenancy tests.

Provides an in-memory Tenancy client, sample users and a recording
invitation sender.
"""

from typing import List, Tuple
from uuid import uuid4

import pytest

from tenancy.client import Tenancy
from tenancy.config import TenancyConfig
from tenancy.invitations.models import Invitation
from tenancy.organizations.models import Organization
from tenancy.storage import MemoryStore
from tenancy.users import User


class RecordingSender:
    """Invitation sender that remembers what it was asked to deliver."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Tuple[Invitation, Organization]] = []
        self.fail = fail

    async def send(self, invitation: Invitation, organization: Organization) -> None:
        if self.fail:
            raise RuntimeError("smtp is down")
        self.sent.append((invitation, organization))


def make_user(email: str) -> User:
    return User(id=uuid4(), email=email)


@pytest.fixture
def tenancy_config():
    """Create a test TenancyConfig."""
    return TenancyConfig(deliver_invitations_in_background=False)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def failing_sender():
    return RecordingSender(fail=True)


@pytest.fixture
def tenancy(tenancy_config, store, sender):
    """Create a test Tenancy instance."""
    return Tenancy(config=tenancy_config, store=store, sender=sender)


@pytest.fixture
def owner():
    return make_user("owner@example.com")


@pytest.fixture
def alice():
    return make_user("alice@example.com")


@pytest.fixture
def bob():
    return make_user("bob@example.com")


@pytest.fixture
async def org(tenancy, owner):
    """An organization owned by ``owner``."""
    return await tenancy.orgs.create(owner, "Acme Corp")


@pytest.fixture
def user_factory():
    """Build extra users on demand."""
    return make_user
