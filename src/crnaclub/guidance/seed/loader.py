from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List

import yaml
from pydantic import ValidationError

from crnaclub.guidance.seed.schema import RuleSeed

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent / "catalog" / "rules.yaml"


# ---------------------------------------------------------------------------
# YAML loading helpers
# ---------------------------------------------------------------------------


def _load_yaml(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except Exception as e:
        raise ValueError(f"Failed to read YAML {path}: {e}") from e


def _normalize_items(payload: Any, source: Path) -> List[dict]:
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if "rules" in payload and isinstance(payload["rules"], list):
            return payload["rules"]
        # Accept single-rule YAML for convenience
        if all(k in payload for k in ("id", "kind")):
            return [payload]
    logger.warning("Skipping %s: unrecognized structure", source)
    return []


def _collect(path: Path) -> List[dict]:
    if path.is_dir():
        items: List[dict] = []
        for p in sorted(path.rglob("*.yml")) + sorted(path.rglob("*.yaml")):
            items.extend(_normalize_items(_load_yaml(p), p))
        return items
    return _normalize_items(_load_yaml(path), path)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_catalog(path: str | Path | None = None) -> list[RuleSeed]:
    """
    Load rule definitions from a YAML file or a directory of YAML files.

    Order is preserved (file order, then sorted file names for directories);
    it becomes the registration order and so the priority tie-break.
    """
    source = Path(path) if path else DEFAULT_CATALOG_PATH
    if not source.exists():
        raise ValueError(f"Rule catalog not found: {source}")

    seeds: list[RuleSeed] = []
    seen: set[str] = set()
    for raw in _collect(source):
        try:
            seed = RuleSeed.model_validate(raw)
        except ValidationError as e:
            raise ValueError(f"Invalid rule in {source}: {e}") from e
        if seed.id in seen:
            raise ValueError(f"Duplicate rule id in {source}: {seed.id}")
        seen.add(seed.id)
        seeds.append(seed)

    logger.debug("Loaded %d rules from %s", len(seeds), source)
    return seeds
