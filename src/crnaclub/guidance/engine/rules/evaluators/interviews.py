"""Interview preparation: invite follow-up, countdown, post-interview and waitlist nudges."""

from __future__ import annotations

import math

from crnaclub.guidance.engine.rules.evaluators.base import (
    CatalogRule,
    days_since,
    days_until,
    program_label,
    register_kind,
)
from crnaclub.guidance.engine.rules.models import Nudge, TargetProgram, UserStateSnapshot

INTERVIEW_STATUSES = {"interview_invite", "interview_scheduled"}
VIRTUAL = "virtual"
IN_PERSON = "in_person"
PENDING = "pending"
WAITLISTED = "waitlisted"


@register_kind("interview_prep")
class InterviewPrepRule(CatalogRule):
    """
    Per program with an interview:
      - invite without a date: ask for date and format (`date_surface`);
      - countdown: `tiers` [{days, urgency, variant?, by_type?}], tightest wins;
        `by_type` appends `_virtual` / `_in_person` to the variant;
      - after the interview, while no outcome is known: thank-you note and
        feedback form on day `thank_you_day`, outcome check from
        `outcome_check_days` on;
      - waitlisted outcome: support nudge.
    """

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        nudges: list[Nudge] = []
        for program in snapshot.target_programs:
            if program.status in INTERVIEW_STATUSES:
                nudges.extend(self._interview(program, snapshot))
            if WAITLISTED in (program.outcome, program.status):
                nudges.append(self._waitlist(program))
        return nudges

    def _ctx(self, program: TargetProgram, **extra) -> dict:
        return {"program_id": program.id, "program_name": program_label(program), **extra}

    def _interview(self, program: TargetProgram, snapshot: UserStateSnapshot) -> list[Nudge]:
        if program.interview_date is None:
            if program.status != "interview_invite":
                return []
            return [
                self.make_nudge(
                    self.nudge_id("date", program.id),
                    self._ctx(program),
                    variant="date",
                    urgency=self.option("date_urgency", "high"),
                    surface=self.option("date_surface"),
                    context=program.id,
                )
            ]

        left = days_until(program.interview_date, snapshot.now)
        if left > 0:
            return self._countdown(program, left)

        since = math.floor(days_since(program.interview_date, snapshot.now))
        if since < 1 or program.outcome not in (None, PENDING):
            return []
        return self._follow_up(program, since)

    def _countdown(self, program: TargetProgram, left: int) -> list[Nudge]:
        tiers = sorted(self.option("tiers") or [], key=lambda t: t["days"])
        tier = next((t for t in tiers if left <= t["days"]), None)
        if tier is None:
            return []

        variant = tier.get("variant", "default")
        if tier.get("by_type"):
            variant = f"{variant}_{VIRTUAL if program.interview_type == VIRTUAL else IN_PERSON}"

        return [
            self.make_nudge(
                self.nudge_id(tier["days"], program.id),
                self._ctx(program, days_left=left, interview_type=program.interview_type),
                variant=variant,
                urgency=tier.get("urgency"),
                context=program.id,
            )
        ]

    def _follow_up(self, program: TargetProgram, since: int) -> list[Nudge]:
        ctx = self._ctx(program, days_since_interview=since)
        nudges: list[Nudge] = []

        if since == int(self.option("thank_you_day", 1)):
            nudges.append(
                self.make_nudge(
                    self.nudge_id("thank_you", program.id),
                    ctx,
                    variant="thank_you",
                    urgency="high",
                    context=program.id,
                )
            )
            nudges.append(
                self.make_nudge(
                    self.nudge_id("feedback", program.id),
                    ctx,
                    variant="feedback",
                    urgency="low",
                    context=program.id,
                )
            )

        if since >= int(self.option("outcome_check_days", 14)):
            nudges.append(
                self.make_nudge(
                    self.nudge_id("outcome", program.id),
                    ctx,
                    variant="outcome",
                    urgency="low",
                    context=program.id,
                )
            )
        return nudges

    def _waitlist(self, program: TargetProgram) -> Nudge:
        return self.make_nudge(
            self.nudge_id("waitlist", program.id),
            self._ctx(program),
            variant="waitlist",
            urgency="low",
            context=program.id,
        )
