"""CLI state commands.

guidance-cli state show USER_ID
guidance-cli state reset USER_ID

Operates on the backend selected by STATE_BACKEND; with the default
`memory` backend there is nothing to show between runs.
"""

from __future__ import annotations

import asyncio
import json

import typer

from crnaclub.guidance.orchestrator.guidance_service import get_state_store

state_app = typer.Typer(add_completion=False, help="Inspect or reset per-user nudge state")


@state_app.command("show")
def show(user_id: str = typer.Argument(..., help="User whose state blob to print.")) -> None:
    """Print the persisted state blob as JSON."""
    blob = asyncio.run(get_state_store().load(user_id))
    typer.echo(json.dumps(blob.to_json(), indent=2, sort_keys=True))


@state_app.command("reset")
def reset(
    user_id: str = typer.Argument(..., help="User whose state to clear."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Clear all dismissals, snoozes, celebrations and analytics for a user."""
    if not yes:
        typer.confirm(f"Reset guidance state for {user_id}?", abort=True)

    persisted = asyncio.run(get_state_store().reset(user_id))
    if not persisted:
        typer.echo("State cleared in memory only; durable delete failed.", err=True)
        raise typer.Exit(1)
    typer.echo(f"Reset state for {user_id}")
