"""
Concurrency tests against the in-memory store.

The store's lock acquisition and write staging are patched to yield to the
event loop so concurrent operations interleave between their reads and
writes.
"""

import asyncio
import gc

import pytest

from tenancy.errors import CannotTransferToNonAdmin, InvariantViolation
from tenancy.roles import Role
from tenancy.storage.memory import MemoryTransaction


@pytest.fixture(autouse=True)
def interleave(monkeypatch):
    acquire = MemoryTransaction._acquire
    stage = MemoryTransaction._stage

    async def yielding_acquire(self, table, row_id):
        await asyncio.sleep(0)
        await acquire(self, table, row_id)

    async def yielding_stage(self, table, row, insert=False):
        await asyncio.sleep(0)
        return await stage(self, table, row, insert=insert)

    monkeypatch.setattr(MemoryTransaction, "_acquire", yielding_acquire)
    monkeypatch.setattr(MemoryTransaction, "_stage", yielding_stage)


async def owner_count(tenancy, org):
    return [m.role for m in await tenancy.orgs.members(org)].count("owner")


class TestConcurrentMembership:
    """Concurrent membership mutations keep one membership per user."""

    @pytest.mark.asyncio
    async def test_concurrent_add_member(self, tenancy, org, alice):
        results = await asyncio.gather(*[tenancy.orgs.add_member(org, alice) for _ in range(5)])

        assert len({m.id for m in results}) == 1
        assert await tenancy.orgs.member_count(org) == 2

    @pytest.mark.asyncio
    async def test_concurrent_accept_same_invitation(self, tenancy, org, owner, alice):
        invite = await tenancy.invites.send(org, "alice@example.com", invited_by=owner)

        results = await asyncio.gather(
            *[tenancy.invites.accept_by_token(invite.token, alice) for _ in range(4)]
        )

        assert all(r.success for r in results)
        assert [r.status for r in results].count("accepted") == 1
        assert len({r.membership.id for r in results}) == 1

    @pytest.mark.asyncio
    async def test_accept_races_add_member(self, tenancy, org, owner, alice):
        invite = await tenancy.invites.send(org, "alice@example.com", invited_by=owner, role=Role.ADMIN)

        accepted, added = await asyncio.gather(
            tenancy.invites.accept(invite, alice),
            tenancy.orgs.add_member(org, alice, role=Role.VIEWER),
        )

        assert accepted.id == added.id
        assert await tenancy.orgs.member_count(org) == 2
        assert (await tenancy.invites.get(invite.id)).is_accepted()


class TestConcurrentOwnership:
    """Concurrent ownership changes keep exactly one owner."""

    @pytest.mark.asyncio
    async def test_concurrent_transfers(self, tenancy, org, alice, bob):
        await tenancy.orgs.add_member(org, alice, role=Role.ADMIN)
        await tenancy.orgs.add_member(org, bob, role=Role.ADMIN)

        await asyncio.gather(
            tenancy.orgs.transfer_ownership(org, alice),
            tenancy.orgs.transfer_ownership(org, bob),
            return_exceptions=True,
        )

        assert await owner_count(tenancy, org) == 1

    @pytest.mark.asyncio
    async def test_transfer_races_demotion(self, tenancy, org, owner, alice):
        await tenancy.orgs.add_member(org, alice, role=Role.ADMIN)

        results = await asyncio.gather(
            tenancy.orgs.transfer_ownership(org, alice),
            tenancy.orgs.change_role(org, alice, Role.MEMBER),
            return_exceptions=True,
        )

        assert await owner_count(tenancy, org) == 1
        owner_membership = await tenancy.orgs.owner(org)
        if owner_membership.user_id == owner.id:
            # Demotion won: the transfer must have been refused
            assert isinstance(results[0], CannotTransferToNonAdmin)
        else:
            # Transfer won: alice is owner and cannot be demoted
            assert isinstance(results[1], InvariantViolation)

    @pytest.mark.asyncio
    async def test_concurrent_removals_never_remove_owner(self, tenancy, org, owner, alice, bob):
        await tenancy.orgs.add_member(org, alice, role=Role.ADMIN)
        await tenancy.orgs.add_member(org, bob)

        await asyncio.gather(
            tenancy.orgs.transfer_ownership(org, alice),
            tenancy.orgs.remove_member(org, alice),
            tenancy.orgs.leave(bob, org),
            return_exceptions=True,
        )

        assert await owner_count(tenancy, org) == 1
        assert not await tenancy.orgs.has_member(org, bob)


class TestConcurrentCreation:
    """Concurrent creation and invitation."""

    @pytest.mark.asyncio
    async def test_concurrent_create_same_name(self, tenancy, owner, alice, bob):
        orgs = await asyncio.gather(
            tenancy.orgs.create(owner, "Acme Corp"),
            tenancy.orgs.create(alice, "Acme Corp"),
            tenancy.orgs.create(bob, "Acme Corp"),
        )

        assert sorted(o.slug for o in orgs) == ["acme-corp", "acme-corp-2", "acme-corp-3"]
        for org in orgs:
            assert await owner_count(tenancy, org) == 1

    @pytest.mark.asyncio
    async def test_concurrent_invites_same_email(self, tenancy, org, owner, sender):
        invites = await asyncio.gather(
            *[tenancy.invites.send(org, "new@example.com", invited_by=owner) for _ in range(4)]
        )

        assert len({i.id for i in invites}) == 1
        assert len(await tenancy.invites.list_for_organization(org)) == 1
        assert len(sender.sent) == 1


class TestRowLocks:
    """Row locks live only as long as someone holds or awaits them."""

    @pytest.mark.asyncio
    async def test_locks_are_released_after_use(self, tenancy, org, alice, bob):
        await asyncio.gather(
            tenancy.orgs.add_member(org, alice, role=Role.ADMIN),
            tenancy.orgs.add_member(org, bob),
        )
        await tenancy.orgs.remove_member(org, bob)
        await tenancy.orgs.transfer_ownership(org, alice)

        gc.collect()
        assert len(tenancy.store._locks) == 0

    @pytest.mark.asyncio
    async def test_waiter_keeps_lock_alive(self, tenancy, org, alice):
        await tenancy.orgs.add_member(org, alice)

        async with tenancy.store.transaction() as tx:
            await tx.lock_organization(org.id)
            removal = asyncio.ensure_future(tenancy.orgs.remove_member(org, alice))
            for _ in range(5):
                await asyncio.sleep(0)
            assert not removal.done()
            gc.collect()
            assert len(tenancy.store._locks) == 1

        assert (await removal).user_id == alice.id
        gc.collect()
        assert len(tenancy.store._locks) == 0
