"""
CLI commands for invitation management.
"""

from typing import Optional

import typer
from rich.table import Table

from .base import console, make_user, open_tenancy, parse_uuid, run_async

app = typer.Typer(help="Manage organization invitations")


@app.command("send")
def invites_send_command(
    email: str = typer.Argument(..., help="Email address to invite"),
    org_id: str = typer.Option(..., "--org", "-o", help="Organization ID"),
    inviter_id: str = typer.Option(..., "--inviter", "-i", help="User ID of the inviting member"),
    role: Optional[str] = typer.Option(None, "--role", "-r", help="Role granted on acceptance"),
) -> None:
    """Send an invitation to join an organization."""

    async def _send():
        async with open_tenancy() as tenancy:
            invite = await tenancy.invites.send(
                parse_uuid(org_id, "organization ID"),
                email,
                invited_by=parse_uuid(inviter_id, "user ID"),
                role=role,
            )
            console.print(f"[green]✓[/green] Invitation sent to {invite.email}")
            console.print(f"  ID: {invite.id}")
            console.print(f"  Role: {invite.role}")
            console.print(f"  Token: {invite.token}")
            console.print(f"  Expires: {invite.expires_at or 'never'}")

    run_async(_send())


@app.command("list")
def invites_list_command(
    org_id: str = typer.Option(..., "--org", "-o", help="Organization ID"),
    pending: bool = typer.Option(False, "--pending", "-p", help="Only pending invites"),
) -> None:
    """List invitations for an organization, newest first."""

    async def _list():
        async with open_tenancy() as tenancy:
            invites = await tenancy.invites.list_for_organization(
                parse_uuid(org_id, "organization ID"),
                pending_only=pending,
            )

            if not invites:
                console.print("[yellow]No invitations found[/yellow]")
                return

            table = Table(title="Invitations")
            table.add_column("Email", style="cyan")
            table.add_column("Role", style="green")
            table.add_column("Status", style="green")
            table.add_column("Expires", style="yellow")
            table.add_column("ID", style="dim")

            for invite in invites:
                table.add_row(
                    invite.email,
                    invite.role,
                    invite.status.value.capitalize(),
                    invite.expires_at.strftime("%Y-%m-%d") if invite.expires_at else "never",
                    str(invite.id),
                )

            console.print(table)

    run_async(_list())


@app.command("accept")
def invites_accept_command(
    token: str = typer.Argument(..., help="Invitation token"),
    user_id: str = typer.Option(..., "--user-id", "-u", help="Accepting user ID"),
    email: str = typer.Option(..., "--email", "-e", help="Accepting user email"),
) -> None:
    """Accept an invitation on behalf of a user."""

    async def _accept():
        async with open_tenancy() as tenancy:
            result = await tenancy.invites.accept_by_token(token, make_user(user_id, email))
            if not result.success:
                console.print(f"[red]Error:[/red] {result.reason.replace('_', ' ')}")
                raise typer.Exit(1)

            if result.already_member:
                console.print("[yellow]Already a member[/yellow]")
            else:
                console.print("[green]✓[/green] Invitation accepted")
            console.print(f"  Organization: {result.membership.organization_id}")
            console.print(f"  Role: {result.membership.role}")

    run_async(_accept())


@app.command("resend")
def invites_resend_command(
    invite_id: str = typer.Argument(..., help="Invitation ID to resend"),
) -> None:
    """Regenerate the token and expiry and deliver again."""

    async def _resend():
        async with open_tenancy() as tenancy:
            invite = await tenancy.invites.resend(parse_uuid(invite_id, "invitation ID"))
            console.print(f"[green]✓[/green] Invitation resent to {invite.email}")
            console.print(f"  Token: {invite.token}")

    run_async(_resend())


@app.command("revoke")
def invites_revoke_command(
    invite_id: str = typer.Argument(..., help="Invitation ID to revoke"),
) -> None:
    """Revoke (delete) a pending invitation."""

    async def _revoke():
        async with open_tenancy() as tenancy:
            await tenancy.invites.revoke(parse_uuid(invite_id, "invitation ID"))
            console.print(f"[green]✓[/green] Invitation {invite_id} revoked")

    run_async(_revoke())
