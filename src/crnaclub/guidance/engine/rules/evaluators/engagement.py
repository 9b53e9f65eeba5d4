from __future__ import annotations

import math

from crnaclub.guidance.engine.rules.evaluators.base import (
    CatalogRule,
    days_since,
    days_until,
    program_label,
    register_kind,
)
from crnaclub.guidance.engine.rules.evaluators.deadlines import CLOSED_STATUSES
from crnaclub.guidance.engine.rules.models import (
    Nudge,
    TargetProgram,
    UserStateSnapshot,
)
from crnaclub.guidance.engine.stage import STAGNATION, compute_risk_signals


def _overdue_items(program: TargetProgram, snapshot: UserStateSnapshot) -> int:
    return sum(
        1
        for item in program.checklist_items
        if not item.completed and item.due_date and item.due_date < snapshot.now
    )


@register_kind("welcome_back")
class WelcomeBackRule(CatalogRule):
    """
    Returning-user nudge after `tiers` days away. The message picks the most
    useful next step, in order: unfinished onboarding, overdue checklist
    items, a deadline within `deadline_window_days`, then clinical logging.
    """

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        away = days_since(snapshot.last_login_at, snapshot.now)
        if away is None:
            return []

        tiers = sorted(self.option("tiers") or [], key=lambda t: t["days"], reverse=True)
        tier = next((t for t in tiers if away >= t["days"]), None)
        if tier is None:
            return []

        reason, extra = self._reason(snapshot)
        ctx = {"days_away": math.floor(away), "reason": reason, **extra}
        return [
            self.make_nudge(
                self.nudge_id(tier["days"]),
                ctx,
                variant=reason,
                urgency=tier.get("urgency"),
            )
        ]

    def _reason(self, snapshot: UserStateSnapshot) -> tuple[str, dict]:
        if snapshot.onboarding_complete is False:
            remaining = max(
                snapshot.onboarding_total_steps - snapshot.onboarding_progress, 0
            )
            return "onboarding", {"steps_remaining": remaining}

        overdue = {p.id: _overdue_items(p, snapshot) for p in snapshot.target_programs}
        total_overdue = sum(overdue.values())
        if total_overdue:
            program = next(p for p in snapshot.target_programs if overdue[p.id])
            return "overdue", {
                "overdue_count": total_overdue,
                "program_id": program.id,
                "program_name": program_label(program),
            }

        window = int(self.option("deadline_window_days", 30))
        for program in snapshot.target_programs:
            if program.status in CLOSED_STATUSES:
                continue
            left = days_until(program.deadline, snapshot.now)
            if left is not None and 0 < left <= window:
                return "deadline", {
                    "days_left": left,
                    "program_id": program.id,
                    "program_name": program_label(program),
                }

        return "fallback", {}


@register_kind("profile_completeness")
class ProfileCompletenessRule(CatalogRule):
    """Fires when any `required_fields` flag is explicitly false on the snapshot profile."""

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        required = list(self.option("required_fields") or [])
        if not required or not snapshot.profile:
            return []

        missing = [f for f in required if snapshot.profile.get(f) is False]
        if not missing:
            return []

        labels = self.option("labels") or {}
        done = len(required) - len(missing)
        ctx = {
            "missing_fields": missing,
            "missing_labels": [labels.get(f, f.replace("_", " ")) for f in missing],
            "missing_count": len(missing),
            "completion_pct": round(100 * done / len(required)),
        }
        return [self.make_nudge(self.engine_id, ctx)]


@register_kind("stagnation")
class StagnationRule(CatalogRule):
    """Restart nudge for users with activity history but no meaningful action lately."""

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        if not snapshot.activity_log:
            return []
        if STAGNATION not in compute_risk_signals(snapshot):
            return []
        return [self.make_nudge(self.engine_id, {})]
