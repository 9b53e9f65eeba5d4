"""
Evaluation pass: snapshot in, partitioned feed out.

The state blob is copied once at the start of the pass, so interactions
recorded while engines run never change the outcome of this pass.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from functools import lru_cache

from crnaclub.guidance.config.settings import Settings, settings
from crnaclub.guidance.engine.evaluator import run_engines
from crnaclub.guidance.engine.feed import FeedLimits, build_feed
from crnaclub.guidance.engine.rules.evaluators.registry import (
    EngineRegistry,
    get_default_registry,
)
from crnaclub.guidance.engine.rules.models import (
    DASHBOARD,
    EvaluationResult,
    Nudge,
    UserStateSnapshot,
)
from crnaclub.guidance.engine.stage import compute_guidance_state
from crnaclub.guidance.orchestrator.interactions import InteractionService
from crnaclub.guidance.state.backends.registry import get_backend
from crnaclub.guidance.state.store import StateStore

logger = logging.getLogger(__name__)


class GuidanceService:
    def __init__(
        self,
        store: StateStore,
        registry: EngineRegistry | None = None,
        *,
        limits: FeedLimits | None = None,
        dismiss_window: timedelta | None = None,
    ):
        self.store = store
        self.registry = registry if registry is not None else get_default_registry()
        self.limits = limits or FeedLimits(
            dashboard=settings.MAX_DASHBOARD_NUDGES,
            inline_per_page=settings.MAX_INLINE_PER_PAGE,
        )
        self.dismiss_window = dismiss_window or timedelta(hours=settings.DISMISS_WINDOW_HOURS)

    async def evaluate(
        self,
        user_id: str,
        snapshot: UserStateSnapshot,
        *,
        now: datetime | None = None,
    ) -> EvaluationResult:
        now = now or snapshot.now
        if snapshot.now != now:
            snapshot = snapshot.model_copy(update={"now": now})

        blob = (await self.store.load(user_id)).model_copy(deep=True)

        engine_pass = run_engines(snapshot, self.registry)
        result = build_feed(
            engine_pass.candidates,
            blob,
            now=now,
            limits=self.limits,
            dismiss_window=self.dismiss_window,
            engine_order=self.registry.order,
            failed_engines=engine_pass.failed_engines,
        )
        result.guidance = compute_guidance_state(snapshot)

        logger.debug(
            "Evaluated user %s: %d visible of %d candidates",
            user_id,
            result.stats.total,
            len(engine_pass.candidates),
        )
        return result

    async def nudges_for_page(
        self,
        user_id: str,
        page: str,
        snapshot: UserStateSnapshot,
        *,
        now: datetime | None = None,
    ) -> list[Nudge]:
        result = await self.evaluate(user_id, snapshot, now=now)
        if page == DASHBOARD:
            return result.dashboard
        # unknown pages get nothing rather than the dashboard feed
        return result.inline.get(page, [])

    async def most_important(
        self,
        user_id: str,
        snapshot: UserStateSnapshot,
        *,
        now: datetime | None = None,
    ) -> Nudge | None:
        result = await self.evaluate(user_id, snapshot, now=now)
        return result.all[0] if result.all else None


# -----------------------------
# Process-wide wiring
# -----------------------------


@lru_cache(maxsize=1)
def get_state_store() -> StateStore:
    return build_state_store(settings)


def build_state_store(cfg: Settings) -> StateStore:
    return StateStore(get_backend(cfg), retention_days=cfg.INTERACTION_RETENTION_DAYS)


def get_guidance_service() -> GuidanceService:
    return GuidanceService(get_state_store())


def get_interaction_service() -> InteractionService:
    return InteractionService(get_state_store())
