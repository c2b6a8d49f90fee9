"""
Tenancy CLI - Command-line interface for organizations and invitations.

Usage:
    tenancy init-db         Create the tenancy tables
    tenancy orgs            Manage organizations
    tenancy roles           Inspect roles and permissions
    tenancy invites         Manage organization invitations
"""

import logging

import typer
from rich.console import Console

from ..storage import SQLStore
from .commands import invites, orgs, roles
from .commands.base import open_tenancy, run_async

# Create the main Typer app
app = typer.Typer(
    name="tenancy",
    help="Multi-tenant organizations, memberships and invitations",
    add_completion=False,
)

# Create a Rich console for pretty output
console = Console()

app.add_typer(orgs.app, name="orgs")
app.add_typer(roles.app, name="roles")
app.add_typer(invites.app, name="invites")


@app.command("init-db")
def init_db_command() -> None:
    """
    Create the tenancy tables in TENANCY_DATABASE_URL.

    Safe to run repeatedly; existing tables are left untouched.
    """

    async def _init():
        async with open_tenancy() as tenancy:
            if not isinstance(tenancy.store, SQLStore):
                console.print("[yellow]Store is not SQL-backed, nothing to create[/yellow]")
                return
            await tenancy.store.create_tables()
            console.print("[green]✓[/green] Tables created")

    run_async(_init())


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """
    Tenancy - organizations with a single owner, roles and invitations.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
