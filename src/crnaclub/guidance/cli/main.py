from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx
import typer
from pydantic import ValidationError

from crnaclub.guidance.cli.catalog import catalog_app
from crnaclub.guidance.cli.state import state_app
from crnaclub.guidance.config.settings import settings
from crnaclub.guidance.engine.rules.models import UserStateSnapshot
from crnaclub.guidance.orchestrator.guidance_service import get_guidance_service

app = typer.Typer(add_completion=True, help="CRNA Club guidance engine CLI")
app.add_typer(state_app, name="state")
app.add_typer(catalog_app, name="catalog")


def _load_snapshot(path: Path, now: Optional[datetime]) -> UserStateSnapshot:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if now is not None:
            raw["now"] = now.isoformat()
        return UserStateSnapshot.model_validate(raw)
    except (json.JSONDecodeError, ValidationError) as e:
        typer.echo(f"Invalid snapshot {path}: {e}", err=True)
        raise typer.Exit(1)


def _evaluate_remote(api_url: str, user_id: str, snapshot: UserStateSnapshot, page: Optional[str]):
    params = {"page": page} if page else None
    resp = httpx.post(
        f"{api_url.rstrip('/')}/guidance/{user_id}/evaluate",
        json=snapshot.model_dump(mode="json", by_alias=True),
        params=params,
        timeout=30,
    )
    if resp.status_code >= 400:
        typer.echo(f"Evaluate request failed ({resp.status_code}): {resp.text}", err=True)
        raise typer.Exit(1)
    return resp.json()


async def _evaluate_local(user_id: str, snapshot: UserStateSnapshot, page: Optional[str]):
    svc = get_guidance_service()
    if page:
        nudges = await svc.nudges_for_page(user_id, page, snapshot)
        return [n.model_dump(mode="json", by_alias=True) for n in nudges]
    result = await svc.evaluate(user_id, snapshot)
    return result.model_dump(mode="json", by_alias=True)


@app.command("evaluate")
def evaluate(
    snapshot_file: Path = typer.Argument(
        ...,
        help="JSON file holding a user state snapshot.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    user_id: str = typer.Option(..., "--user-id", "-u", help="User whose nudge state applies."),
    page: Optional[str] = typer.Option(
        None, "--page", "-p", help="Only print nudges for this page key (or 'dashboard')."
    ),
    now: Optional[datetime] = typer.Option(
        None, "--now", help="Evaluation time (ISO 8601). Defaults to the snapshot's `now`."
    ),
    api_url: Optional[str] = typer.Option(
        None,
        "--api-url",
        envvar="GUIDANCE_API_URL",
        help="Evaluate against a running guidance service instead of in-process.",
    ),
) -> None:
    """Run every rule engine over a snapshot and print the feed as JSON."""
    snapshot = _load_snapshot(snapshot_file, now)

    if api_url:
        out = _evaluate_remote(api_url, user_id, snapshot, page)
    else:
        out = asyncio.run(_evaluate_local(user_id, snapshot, page))

    typer.echo(json.dumps(out, indent=2))


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    app()


if __name__ == "__main__":
    main()
