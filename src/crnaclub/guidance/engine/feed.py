"""
Filter / dedup / priority stage.

Pure function of (candidates, state blob, now): nothing here reads the store
or mutates the blob. Callers pass a blob copy taken before the pass starts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable

from crnaclub.guidance.engine.rules.models import (
    CELEBRATION,
    DASHBOARD,
    DISMISS_TYPE_DAYS,
    URGENCY_RANK,
    EvaluationResult,
    Nudge,
    NudgeState,
    NudgeStats,
    StateBlob,
    Urgency,
    inline_page_key,
)

logger = logging.getLogger(__name__)

DEFAULT_DISMISS_WINDOW = timedelta(hours=24)


class SuppressionReason(str, Enum):
    PERMANENT = "permanently_dismissed"
    SNOOZED = "snoozed"
    DISMISSED = "dismissed"
    PROMPT_DISMISSED = "prompt_dismissed"
    CELEBRATED = "celebrated"


@dataclass(frozen=True)
class FeedLimits:
    """Truncation for render slots. None or 0 means unlimited."""

    dashboard: int | None = None
    inline_per_page: int | None = None


# -----------------------------
# Suppression predicates
# -----------------------------


def nudge_state_reason(
    state: NudgeState | None,
    now: datetime,
    dismiss_window: timedelta = DEFAULT_DISMISS_WINDOW,
) -> SuppressionReason | None:
    # each check stands alone; any one suppresses
    if state is None:
        return None
    if state.permanently_dismissed:
        return SuppressionReason.PERMANENT
    if state.snoozed_until is not None and state.snoozed_until > now:
        return SuppressionReason.SNOOZED
    if state.last_dismissed_at is not None and now - state.last_dismissed_at < dismiss_window:
        return SuppressionReason.DISMISSED
    return None


def is_prompt_dismissed(
    blob: StateBlob,
    prompt_id: str,
    context: str | None,
    now: datetime,
) -> bool:
    """
    True if an active prompt-level dismissal covers (prompt_id, context).
    A dismissal recorded without context covers every context.
    """
    for d in blob.dismissed_prompts:
        if d.prompt_id != prompt_id:
            continue
        if d.context is not None and d.context != context:
            continue
        days = DISMISS_TYPE_DAYS.get(d.dismiss_type)
        if days is not None and now > d.dismissed_at + timedelta(days=days):
            continue
        return True
    return False


def suppression_reason(
    nudge: Nudge,
    blob: StateBlob,
    now: datetime,
    dismiss_window: timedelta = DEFAULT_DISMISS_WINDOW,
) -> SuppressionReason | None:
    reason = nudge_state_reason(blob.tracker_nudges.get(nudge.id), now, dismiss_window)
    if reason is not None:
        return reason
    if nudge.prompt_id and is_prompt_dismissed(blob, nudge.prompt_id, nudge.context, now):
        return SuppressionReason.PROMPT_DISMISSED
    if nudge.surface == CELEBRATION and nudge.celebration_key in blob.celebrated_events:
        return SuppressionReason.CELEBRATED
    return None


# -----------------------------
# Dedup / sort / stats
# -----------------------------


def dedup(nudges: Iterable[Nudge]) -> list[Nudge]:
    """Keep the first nudge seen for each id."""
    seen: set[str] = set()
    out: list[Nudge] = []
    for n in nudges:
        if n.id in seen:
            logger.debug("Dropping duplicate nudge %s from %s", n.id, n.engine_id)
            continue
        seen.add(n.id)
        out.append(n)
    return out


def sort_by_urgency(
    nudges: Iterable[Nudge],
    engine_order: Callable[[str], int] | None = None,
) -> list[Nudge]:
    """
    Stable sort, critical first. Ties keep engine registration order when
    `engine_order` is given, input order otherwise.
    """
    if engine_order is None:
        return sorted(nudges, key=lambda n: URGENCY_RANK[n.urgency])
    return sorted(
        nudges, key=lambda n: (URGENCY_RANK[n.urgency], engine_order(n.engine_id))
    )


def compute_stats(nudges: Iterable[Nudge]) -> NudgeStats:
    counts = {u: 0 for u in Urgency}
    total = 0
    for n in nudges:
        counts[n.urgency] += 1
        total += 1
    return NudgeStats(
        total=total,
        critical=counts[Urgency.critical],
        high=counts[Urgency.high],
        medium=counts[Urgency.medium],
        low=counts[Urgency.low],
    )


def _limit(nudges: list[Nudge], limit: int | None) -> list[Nudge]:
    return nudges[:limit] if limit else nudges


# -----------------------------
# Stage entrypoint
# -----------------------------


def build_feed(
    candidates: Iterable[Nudge],
    blob: StateBlob,
    *,
    now: datetime,
    limits: FeedLimits | None = None,
    dismiss_window: timedelta = DEFAULT_DISMISS_WINDOW,
    engine_order: Callable[[str], int] | None = None,
    failed_engines: Iterable[str] = (),
) -> EvaluationResult:
    limits = limits or FeedLimits()

    visible: list[Nudge] = []
    for n in candidates:
        reason = suppression_reason(n, blob, now, dismiss_window)
        if reason is None:
            visible.append(n)
        else:
            logger.debug("Suppressed %s: %s", n.id, reason.value)

    ordered = sort_by_urgency(dedup(visible), engine_order)

    dashboard: list[Nudge] = []
    inline: dict[str, list[Nudge]] = {}
    celebrations: list[Nudge] = []
    by_engine: dict[str, list[Nudge]] = {}

    for n in ordered:
        by_engine.setdefault(n.engine_id, []).append(n)
        if n.surface == DASHBOARD:
            dashboard.append(n)
        elif n.surface == CELEBRATION:
            celebrations.append(n)
        else:
            page = inline_page_key(n.surface)
            if page is not None:
                inline.setdefault(page, []).append(n)

    return EvaluationResult(
        dashboard=_limit(dashboard, limits.dashboard),
        inline={k: _limit(v, limits.inline_per_page) for k, v in inline.items()},
        mobile=ordered[:1],
        celebrations=celebrations,
        stats=compute_stats(ordered),
        by_engine=by_engine,
        all=ordered,
        failed_engines=list(failed_engines),
    )
