"""
Basic Tenancy usage example.

This example demonstrates the core features of Tenancy:
- Organization creation (the creator becomes the owner)
- Invitations by email and acceptance by token
- Role checks and ownership transfer
- Lifecycle events

Run with:
    python examples/basic_usage.py
"""

import asyncio
from uuid import uuid4

from tenancy import Event, Role, Tenancy, User


async def main():
    # Create Tenancy client (loads config from .env; in-memory store by default)
    tenancy = await Tenancy.create()

    tenancy.events.on(
        Event.MEMBER_JOINED,
        lambda ctx: print(f"  [event] {ctx.membership.email} joined {ctx.organization.name}"),
    )

    ceo = User(id=uuid4(), email="ceo@acme.com")
    cto = User(id=uuid4(), email="cto@acme.com")

    try:
        # =================================================================
        # 1. Create Organization
        # =================================================================
        print("Creating organization...")

        org = await tenancy.orgs.create(ceo, "Acme Corporation")
        print(f"  Created org: {org.name} (slug: {org.slug})")

        # =================================================================
        # 2. Invite and Accept
        # =================================================================
        print("\nInviting the CTO...")

        invite = await tenancy.invites.send(org, cto.email, invited_by=ceo, role=Role.ADMIN)
        print(f"  Invitation for {invite.email} expires {invite.expires_at:%Y-%m-%d}")

        result = await tenancy.invites.accept_by_token(invite.token, cto)
        if result.success:
            print(f"  Accepted as {result.membership.role}")
        else:
            print(f"  Could not accept: {result.reason}")

        # =================================================================
        # 3. Permission Checks
        # =================================================================
        print("\nChecking permissions...")

        for permission in ("invite_members", "delete_organization"):
            allowed = await tenancy.memberships.has_permission(cto, permission, org)
            print(f"  CTO {permission}: {'yes' if allowed else 'no'}")

        # =================================================================
        # 4. Transfer Ownership
        # =================================================================
        print("\nTransferring ownership...")

        await tenancy.orgs.transfer_ownership(org, cto, transferred_by=ceo)
        for membership in await tenancy.orgs.members(org):
            print(f"  {membership.email}: {membership.role}")

    finally:
        await tenancy.close()


if __name__ == "__main__":
    asyncio.run(main())
