"""
Shared helpers for CLI commands.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

import typer
from rich.console import Console

from ...client import Tenancy
from ...errors import TenancyError
from ...users import User

console = Console()


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


@asynccontextmanager
async def open_tenancy(require_database: bool = True) -> AsyncIterator[Tenancy]:
    """
    Build a client from the environment and close it afterwards.

    Tenancy errors are printed and turned into exit code 1.
    """
    try:
        tenancy = await Tenancy.create()
    except TenancyError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if require_database and not tenancy.config.database_url:
        console.print("[red]Error:[/red] TENANCY_DATABASE_URL is not set")
        await tenancy.close()
        raise typer.Exit(1)

    try:
        yield tenancy
    except (TenancyError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        await tenancy.close()


def parse_uuid(value: str, label: str = "ID") -> UUID:
    try:
        return UUID(value)
    except ValueError:
        console.print(f"[red]Error:[/red] Invalid {label}: {value}")
        raise typer.Exit(1)


def make_user(user_id: str, email: str) -> User:
    """Identity for the acting user, as given on the command line."""
    return User(id=parse_uuid(user_id, "user ID"), email=email)
