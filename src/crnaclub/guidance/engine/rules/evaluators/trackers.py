"""Tracker reminders: time since the last log entry, and backlogs waiting to be logged."""

from __future__ import annotations

import math

from crnaclub.guidance.engine.rules.evaluators.base import (
    CatalogRule,
    days_since,
    reached,
    register_kind,
)
from crnaclub.guidance.engine.rules.models import Nudge, UserStateSnapshot


@register_kind("staleness")
class StalenessRule(CatalogRule):
    """
    Fires when `definition.field` (a snapshot timestamp) is at least
    `definition.threshold_days` old.

    Optional `definition.goal = {value: <field>, target: <field>}` additionally
    requires value < target (both present).
    """

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        field = self.option("field") or ""
        threshold = float(self.option("threshold_days", 7))

        elapsed = days_since(getattr(snapshot, field, None), snapshot.now)
        if not reached(elapsed, threshold):
            return []

        ctx = {
            "days": math.floor(elapsed),
            "threshold_days": self.option("threshold_days", 7),
        }

        goal = self.option("goal")
        if goal:
            value = getattr(snapshot, goal.get("value", ""), None)
            target = getattr(snapshot, goal.get("target", ""), None)
            if value is None or target is None or value >= target:
                return []
            ctx.update({"value": value, "target": target, "remaining": target - value})

        return [self.make_nudge(self.engine_id, ctx)]


@register_kind("pending_count")
class PendingCountRule(CatalogRule):
    """Fires when the integer snapshot field `definition.field` is >= min_count."""

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        count = getattr(snapshot, self.option("field") or "", None)
        if not isinstance(count, int) or count < int(self.option("min_count", 1)):
            return []
        return [self.make_nudge(self.engine_id, {"count": count})]
