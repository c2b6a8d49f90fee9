"""
Tests for tenancy.organizations.members module.
"""

import pytest

from tenancy.errors import (
    CannotDemoteOwner,
    CannotPromoteToOwner,
    InvalidRole,
    InvalidRoleChange,
    NotAMember,
    NotAuthorized,
)
from tenancy.events import Event
from tenancy.roles import Role


class TestPromoteDemote:
    """Tests for MembershipManager.promote and demote."""

    @pytest.mark.asyncio
    async def test_promote(self, tenancy, org, owner, alice):
        events = []
        tenancy.events.on(Event.ROLE_CHANGED, lambda ctx: events.append(ctx))
        membership = await tenancy.orgs.add_member(org, alice, role=Role.VIEWER)

        promoted = await tenancy.memberships.promote(membership, Role.ADMIN, changed_by=owner)

        assert promoted.role == "admin"
        assert events[0].old_role == "viewer"
        assert events[0].new_role == "admin"

    @pytest.mark.asyncio
    async def test_promote_to_same_role_is_noop(self, tenancy, org, alice):
        events = []
        tenancy.events.on(Event.ROLE_CHANGED, lambda ctx: events.append(ctx))
        membership = await tenancy.orgs.add_member(org, alice, role=Role.MEMBER)

        assert (await tenancy.memberships.promote(membership, "member")).role == "member"
        assert events == []

    @pytest.mark.asyncio
    async def test_promote_to_owner_rejected(self, tenancy, org, alice):
        membership = await tenancy.orgs.add_member(org, alice, role=Role.ADMIN)
        with pytest.raises(CannotPromoteToOwner):
            await tenancy.memberships.promote(membership, Role.OWNER)

    @pytest.mark.asyncio
    async def test_promote_to_lower_role_rejected(self, tenancy, org, alice):
        membership = await tenancy.orgs.add_member(org, alice, role=Role.ADMIN)
        with pytest.raises(InvalidRoleChange):
            await tenancy.memberships.promote(membership, Role.VIEWER)
        assert await tenancy.memberships.role_in(alice, org) == "admin"

    @pytest.mark.asyncio
    async def test_demote(self, tenancy, org, alice):
        membership = await tenancy.orgs.add_member(org, alice, role=Role.ADMIN)
        demoted = await tenancy.memberships.demote(membership, Role.VIEWER)
        assert demoted.role == "viewer"

    @pytest.mark.asyncio
    async def test_demote_owner_rejected(self, tenancy, org, owner):
        membership = await tenancy.memberships.get(org, owner)
        with pytest.raises(CannotDemoteOwner):
            await tenancy.memberships.demote(membership, Role.ADMIN)
        assert await tenancy.memberships.role_in(owner, org) == "owner"

    @pytest.mark.asyncio
    async def test_demote_to_higher_role_rejected(self, tenancy, org, alice):
        membership = await tenancy.orgs.add_member(org, alice, role=Role.VIEWER)
        with pytest.raises(InvalidRoleChange):
            await tenancy.memberships.demote(membership, Role.ADMIN)

    @pytest.mark.asyncio
    async def test_invalid_role(self, tenancy, org, alice):
        membership = await tenancy.orgs.add_member(org, alice)
        with pytest.raises(InvalidRole) as exc_info:
            await tenancy.memberships.promote(membership, "superuser")
        assert "owner, admin, member, viewer" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_checks_use_current_role(self, tenancy, org, alice):
        stale = await tenancy.orgs.add_member(org, alice, role=Role.VIEWER)
        await tenancy.orgs.change_role(org, alice, Role.ADMIN)

        # The stale copy still says viewer, but the stored role is admin
        with pytest.raises(InvalidRoleChange):
            await tenancy.memberships.promote(stale, Role.MEMBER)


class TestPermissionQueries:
    """Tests for role and permission queries."""

    @pytest.mark.asyncio
    async def test_role_in(self, tenancy, org, owner, alice):
        assert await tenancy.memberships.role_in(owner, org) == "owner"
        assert await tenancy.memberships.role_in(alice, org) is None
        assert await tenancy.memberships.role_in(owner, None) is None

    @pytest.mark.asyncio
    async def test_has_permission(self, tenancy, org, owner, alice, bob):
        await tenancy.orgs.add_member(org, alice, role=Role.MEMBER)

        assert await tenancy.memberships.has_permission(owner, "transfer_ownership", org)
        assert await tenancy.memberships.has_permission(alice, "create_resources", org)
        assert not await tenancy.memberships.has_permission(alice, "invite_members", org)
        assert not await tenancy.memberships.has_permission(bob, "view_organization", org)

    @pytest.mark.asyncio
    async def test_is_at_least(self, tenancy, org, alice):
        await tenancy.orgs.add_member(org, alice, role=Role.ADMIN)
        assert await tenancy.memberships.is_at_least(alice, Role.MEMBER, org)
        assert not await tenancy.memberships.is_at_least(alice, Role.OWNER, org)

    @pytest.mark.asyncio
    async def test_permissions(self, tenancy, org, alice):
        await tenancy.orgs.add_member(org, alice, role=Role.VIEWER)
        assert await tenancy.memberships.permissions(alice, org) == frozenset(
            {"view_organization", "view_members"}
        )

    @pytest.mark.asyncio
    async def test_require_permission(self, tenancy, org, alice, bob):
        await tenancy.orgs.add_member(org, alice, role=Role.MEMBER)

        with pytest.raises(NotAuthorized) as exc_info:
            await tenancy.memberships.require_permission(alice, "remove_members", org)
        assert exc_info.value.permission == "remove_members"

        with pytest.raises(NotAMember):
            await tenancy.memberships.require_permission(bob, "view_members", org)

        membership = await tenancy.memberships.require_permission(alice, "view_members", org)
        assert membership.user_id == alice.id

    @pytest.mark.asyncio
    async def test_belongs_to_any(self, tenancy, org, owner, alice):
        assert await tenancy.memberships.belongs_to_any(owner)
        assert not await tenancy.memberships.belongs_to_any(alice)
        assert len(await tenancy.memberships.list_for_user(owner)) == 1
