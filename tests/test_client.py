"""
Tests for tenancy.client module.
"""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from tenancy import Tenancy, TenancyConfig
from tenancy.errors import ConfigurationError
from tenancy.invitations.invites import InvitationManager
from tenancy.organizations.members import MembershipManager
from tenancy.organizations.orgs import OrganizationManager
from tenancy.storage import MemoryStore


class TestTenancyClient:
    """Tests for the Tenancy client."""

    def test_client_initialization(self):
        tenancy = Tenancy(config=TenancyConfig())

        assert isinstance(tenancy.store, MemoryStore)
        assert isinstance(tenancy.orgs, OrganizationManager)
        assert isinstance(tenancy.memberships, MembershipManager)
        assert isinstance(tenancy.invites, InvitationManager)
        assert tenancy.sender is None

    def test_clients_do_not_share_roles_or_listeners(self):
        first = Tenancy(config=TenancyConfig())
        second = Tenancy(config=TenancyConfig())
        first.events.on("member_joined", lambda ctx: None)

        assert second.events.listeners_for("member_joined") == []
        assert first.roles is not second.roles

    @pytest.mark.asyncio
    async def test_create_defaults_to_memory_store(self):
        tenancy = await Tenancy.create()
        assert isinstance(tenancy.store, MemoryStore)
        await tenancy.close()

    @pytest.mark.asyncio
    async def test_create_with_debug(self):
        tenancy = await Tenancy.create(debug=True)
        assert logging.getLogger("tenancy").level == logging.DEBUG
        logging.getLogger("tenancy").setLevel(logging.NOTSET)
        await tenancy.close()

    @pytest.mark.asyncio
    async def test_create_invalid_config(self):
        with pytest.raises(ConfigurationError):
            await Tenancy.create(default_invitation_role="owner")

    @pytest.mark.asyncio
    async def test_create_builds_supabase_sender(self):
        sender = AsyncMock()
        with patch(
            "tenancy.client.SupabaseInvitationSender.create",
            AsyncMock(return_value=sender),
        ) as create_sender:
            tenancy = await Tenancy.create(
                supabase_url="https://test.supabase.co",
                supabase_key="test-service-key-12345678901234567890",
            )

        create_sender.assert_awaited_once()
        assert tenancy.sender is sender

        await tenancy.close()
        sender.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_async_context_manager(self, owner):
        async with Tenancy(config=TenancyConfig()) as tenancy:
            org = await tenancy.orgs.create(owner, "Acme Corp")
            assert org.slug == "acme-corp"
