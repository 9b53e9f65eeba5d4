from __future__ import annotations

import logging
from dataclasses import dataclass, field

from crnaclub.guidance.engine.feed import dedup
from crnaclub.guidance.engine.rules.evaluators.registry import (
    EngineRegistry,
    get_default_registry,
)
from crnaclub.guidance.engine.rules.models import Nudge, UserStateSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationPass:
    candidates: list[Nudge]
    failed_engines: list[str] = field(default_factory=list)


def run_engines(
    snapshot: UserStateSnapshot,
    registry: EngineRegistry | None = None,
) -> EvaluationPass:
    """
    Run every registered engine against one snapshot, in registration order.

    A failing engine contributes nothing for this pass; the others still run.
    Each nudge is stamped with the id of the engine that produced it, and
    only the first nudge seen for an id is kept.
    """
    registry = registry if registry is not None else get_default_registry()

    candidates: list[Nudge] = []
    failed: list[str] = []
    for engine in registry:
        try:
            produced = list(engine.evaluate(snapshot) or [])
        except Exception:
            logger.exception("Rule engine %s failed", engine.engine_id)
            failed.append(engine.engine_id)
            continue

        for nudge in produced:
            if nudge.engine_id != engine.engine_id:
                nudge = nudge.model_copy(update={"engine_id": engine.engine_id})
            candidates.append(nudge)

    logger.debug(
        "Evaluated %d engines: %d candidates, %d failed",
        len(registry),
        len(candidates),
        len(failed),
    )
    return EvaluationPass(candidates=dedup(candidates), failed_engines=failed)


def evaluate_all(
    snapshot: UserStateSnapshot,
    registry: EngineRegistry | None = None,
) -> list[Nudge]:
    return run_engines(snapshot, registry).candidates
