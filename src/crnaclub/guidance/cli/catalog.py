"""CLI catalog commands.

guidance-cli catalog check [PATH]
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from crnaclub.guidance.config.settings import settings
from crnaclub.guidance.engine.rules.evaluators.base import get_kind, known_kinds
from crnaclub.guidance.engine.rules.evaluators.registry import build_registry
from crnaclub.guidance.seed.loader import load_catalog

catalog_app = typer.Typer(add_completion=False, help="Inspect the rule catalog")


@catalog_app.command("check")
def check(
    path: Optional[Path] = typer.Argument(
        None,
        help="Rules YAML file or directory. Defaults to CATALOG_PATH or the packaged catalog.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Validate a catalog and report rules whose kind has no engine."""
    source = str(path) if path is not None else settings.CATALOG_PATH
    try:
        seeds = load_catalog(source)
    except ValueError as e:
        typer.echo(f"Invalid catalog: {e}", err=True)
        raise typer.Exit(1)

    unknown = [s for s in seeds if get_kind(s.kind) is None]
    enabled = [s for s in seeds if s.enabled]
    typer.echo(f"Loaded {len(seeds)} rules ({len(enabled)} enabled)")

    if verbose:
        for s in seeds:
            flag = "" if s.enabled else "  [disabled]"
            typer.echo(f"  {s.id:<24} {s.kind:<22} {s.urgency.value:<9} {s.surface}{flag}")

    if unknown:
        for s in unknown:
            typer.echo(f"  [error] {s.id}: unknown kind {s.kind!r}", err=True)
        typer.echo(f"Known kinds: {', '.join(sorted(known_kinds()))}", err=True)
        raise typer.Exit(1)

    registry = build_registry(seeds)
    typer.echo(f"Engines: {', '.join(registry.engine_ids)}")
