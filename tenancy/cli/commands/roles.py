"""
tenancy roles command - Inspect the role hierarchy and permissions.
"""

from typing import Optional

import typer
from rich.table import Table

from ...config import load_config
from ...errors import ConfigurationError
from ...roles import RoleRegistry
from .base import console

app = typer.Typer(help="Inspect roles and permissions")


def _registry() -> RoleRegistry:
    try:
        config = load_config()
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    return RoleRegistry(config.roles)


@app.command("list")
def roles_list_command(
    role: Optional[str] = typer.Option(None, "--role", "-r", help="Only show this role"),
) -> None:
    """
    Show the permission table, highest role first.

    Example:
        $ tenancy roles list
        $ tenancy roles list --role admin
    """
    registry = _registry()
    names = registry.hierarchy
    if role is not None:
        if not registry.is_valid(role):
            console.print(f"[red]Error:[/red] Unknown role: {role}")
            raise typer.Exit(1)
        names = (role.lower(),)

    table = Table(title="Roles")
    table.add_column("Role", style="cyan")
    table.add_column("Permissions", style="green")

    for name in names:
        table.add_row(name, ", ".join(sorted(registry.permissions_for(name))) or "-")

    console.print(table)


@app.command("check")
def roles_check_command(
    role: str = typer.Argument(..., help="Role name"),
    permission: str = typer.Argument(..., help="Permission name"),
) -> None:
    """
    Check whether a role grants a permission (exit code 1 if not).

    Example:
        $ tenancy roles check admin invite_members
    """
    registry = _registry()
    if registry.has_permission(role, permission):
        console.print(f"[green]✓[/green] {role} has {permission}")
        return

    console.print(f"[red]✗[/red] {role} does not have {permission}")
    raise typer.Exit(1)
