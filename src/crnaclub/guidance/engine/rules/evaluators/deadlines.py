"""Deadline proximity and letter-of-recommendation tracking."""

from __future__ import annotations

import math

from crnaclub.guidance.engine.rules.evaluators.base import (
    CatalogRule,
    days_since,
    days_until,
    program_label,
    register_kind,
)
from crnaclub.guidance.engine.rules.models import (
    LetterRequest,
    Nudge,
    TargetProgram,
    UserStateSnapshot,
)

# Programs past these statuses no longer need deadline reminders
CLOSED_STATUSES = {"submitted", "accepted", "waitlisted", "denied"}


def _sorted_tiers(tiers: list[dict], reverse: bool = False) -> list[dict]:
    return sorted(tiers or [], key=lambda t: t["days"], reverse=reverse)


@register_kind("deadline")
class DeadlineRule(CatalogRule):
    """
    One nudge per open target program whose deadline is within a tier.

    `definition.tiers`: [{days, urgency, variant?}], the tightest matching tier
    wins. The nudge id carries the tier so escalation is not hidden by a
    dismissal of the looser alert.
    """

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        tiers = _sorted_tiers(self.option("tiers"))
        closed = set(self.option("closed_statuses", CLOSED_STATUSES))
        nudges: list[Nudge] = []

        for program in snapshot.target_programs:
            if program.status in closed:
                continue
            left = days_until(program.deadline, snapshot.now)
            if left is None or left < 0:
                continue

            tier = next((t for t in tiers if left <= t["days"]), None)
            if tier is None:
                continue

            ctx = {
                "program_id": program.id,
                "program_name": program_label(program),
                "days_left": left,
                "tier_days": tier["days"],
            }
            nudges.append(
                self.make_nudge(
                    self.nudge_id(tier["days"], program.id),
                    ctx,
                    variant=tier.get("variant", "default"),
                    urgency=tier.get("urgency"),
                    context=program.id,
                )
            )
        return nudges


@register_kind("lor_pending")
class LetterTrackingRule(CatalogRule):
    """
    Two checks:
      - letter requests still pending after `pending_tiers` days;
      - open programs within `deadline_window_days` still short of letters.
    """

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        return self._pending(snapshot) + self._incomplete(snapshot)

    def _pending(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        # loosest-last so the longest wait wins
        tiers = _sorted_tiers(self.option("pending_tiers"), reverse=True)
        nudges: list[Nudge] = []

        for lor in snapshot.letter_requests:
            if lor.status != "requested":
                continue
            waited = days_since(lor.requested_at, snapshot.now)
            if waited is None:
                continue
            tier = next((t for t in tiers if waited >= t["days"]), None)
            if tier is None:
                continue

            ctx = {
                "letter_id": lor.id,
                "recommender_name": lor.recommender_name or "your recommender",
                "days_pending": math.floor(waited),
            }
            nudges.append(
                self.make_nudge(
                    self.nudge_id(f"pending_{tier['days']}", lor.id),
                    ctx,
                    variant="pending",
                    urgency=tier.get("urgency"),
                    context=lor.id,
                )
            )
        return nudges

    def _incomplete(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        window = int(self.option("deadline_window_days", 14))
        nudges: list[Nudge] = []

        for program in snapshot.target_programs:
            if program.status in CLOSED_STATUSES:
                continue
            left = days_until(program.deadline, snapshot.now)
            if left is None or left < 0 or left > window:
                continue

            received = _received_for(program, snapshot.letter_requests)
            if received >= program.lor_required:
                continue

            ctx = {
                "program_id": program.id,
                "program_name": program_label(program),
                "days_left": left,
                "letters_needed": program.lor_required - received,
            }
            nudges.append(
                self.make_nudge(
                    self.nudge_id("incomplete", program.id),
                    ctx,
                    variant="incomplete",
                    urgency=self.option("deadline_urgency", "critical"),
                    surface=self.option("deadline_surface"),
                    context=program.id,
                )
            )
        return nudges


def _received_for(program: TargetProgram, letters: list[LetterRequest]) -> int:
    return sum(
        1
        for lor in letters
        if lor.status == "received"
        and (lor.program_ids is None or program.id in lor.program_ids)
    )
