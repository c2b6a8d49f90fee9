"""
tenancy orgs command - Organization management CLI.
"""

from typing import Optional

import typer
from rich.table import Table

from .base import console, make_user, open_tenancy, parse_uuid, run_async

app = typer.Typer(help="Manage organizations")


@app.command("create")
def orgs_create_command(
    name: str = typer.Argument(..., help="Organization name"),
    owner_id: str = typer.Option(..., "--owner-id", help="Owner user ID"),
    owner_email: str = typer.Option(..., "--owner-email", help="Owner email"),
    slug: Optional[str] = typer.Option(None, "--slug", "-s", help="Explicit slug"),
) -> None:
    """
    Create a new organization owned by the given user.

    Example:
        $ tenancy orgs create "Acme Corp" --owner-id 1b4e... --owner-email ceo@acme.com
    """

    async def _create():
        async with open_tenancy() as tenancy:
            owner = make_user(owner_id, owner_email)
            org = await tenancy.orgs.create(owner, name, slug=slug)

            console.print("[green]✓[/green] Organization created successfully!")
            console.print(f"\nID: [cyan]{org.id}[/cyan]")
            console.print(f"Name: [cyan]{org.name}[/cyan]")
            console.print(f"Slug: [cyan]{org.slug}[/cyan]")
            console.print(f"Owner: [cyan]{owner.email}[/cyan]\n")

    run_async(_create())


@app.command("members")
def orgs_members_command(
    org_id: str = typer.Argument(..., help="Organization ID"),
) -> None:
    """
    List members of an organization, owner first.

    Example:
        $ tenancy orgs members 7c9e...
    """

    async def _members():
        async with open_tenancy() as tenancy:
            organization_id = parse_uuid(org_id, "organization ID")
            members = await tenancy.orgs.members(organization_id)

            if not members:
                console.print("[yellow]No members found[/yellow]")
                return

            table = Table(title="Members")
            table.add_column("User ID", style="dim")
            table.add_column("Email", style="cyan")
            table.add_column("Role", style="green")
            table.add_column("Joined", style="yellow")

            for membership in members:
                table.add_row(
                    str(membership.user_id),
                    membership.email or "-",
                    membership.role,
                    membership.created_at.strftime("%Y-%m-%d"),
                )

            console.print(table)

    run_async(_members())


@app.command("transfer")
def orgs_transfer_command(
    org_id: str = typer.Argument(..., help="Organization ID"),
    user_id: str = typer.Argument(..., help="User ID of the new owner (must be an admin)"),
) -> None:
    """
    Transfer ownership to an admin of the organization.

    Example:
        $ tenancy orgs transfer 7c9e... 1b4e...
    """

    async def _transfer():
        async with open_tenancy() as tenancy:
            membership = await tenancy.orgs.transfer_ownership(
                parse_uuid(org_id, "organization ID"),
                parse_uuid(user_id, "user ID"),
            )
            console.print(f"[green]✓[/green] Ownership transferred to {membership.user_id}")

    run_async(_transfer())
