from __future__ import annotations

from crnaclub.guidance.engine.rules.evaluators.base import (
    CatalogRule,
    days_since,
    program_label,
    register_kind,
)
from crnaclub.guidance.engine.rules.models import CELEBRATION, Nudge, UserStateSnapshot

DEFAULT_CHECKLIST_MILESTONES = [1, 5, 10]
DEFAULT_STREAK_MILESTONES = [3, 7, 14, 30]


@register_kind("celebration")
class CelebrationRule(CatalogRule):
    """
    Celebration nudges. Each one carries an `event_id`; once the event is
    marked celebrated the feed stage never queues it again.
    """

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        nudges: list[Nudge] = []
        for check in (self._acceptance, self._checklist, self._first_target, self._streak):
            nudge = check(snapshot)
            if nudge is not None:
                nudges.append(nudge)
        return nudges

    def _celebrate(self, key: str, ctx: dict, variant: str, **kw) -> Nudge:
        nudge_id = self.nudge_id(key)
        return self.make_nudge(
            nudge_id,
            ctx,
            variant=variant,
            surface=CELEBRATION,
            event_id=nudge_id,
            **kw,
        )

    def _acceptance(self, snapshot: UserStateSnapshot) -> Nudge | None:
        window_hours = float(self.option("acceptance_window_hours", 24))
        for program in snapshot.target_programs:
            if program.status != "accepted":
                continue
            age = days_since(program.accepted_at, snapshot.now)
            if age is None or age * 24 >= window_hours:
                continue
            return self._celebrate(
                f"acceptance_{program.id}",
                {"program_id": program.id, "program_name": program_label(program)},
                "acceptance",
                urgency=self.option("acceptance_urgency", "high"),
                context=program.id,
            )
        return None

    def _checklist(self, snapshot: UserStateSnapshot) -> Nudge | None:
        total = snapshot.checklist_completed
        previous = snapshot.previous_checklist_completed or 0
        if not total or total == previous:
            return None
        milestones = sorted(self.option("checklist_milestones", DEFAULT_CHECKLIST_MILESTONES))
        # one checklist celebration per evaluation
        crossed = next((m for m in milestones if total >= m > previous), None)
        if crossed is None:
            return None
        return self._celebrate(
            f"checklist_{crossed}",
            {"milestone": crossed, "total_completed": total},
            "checklist",
        )

    def _first_target(self, snapshot: UserStateSnapshot) -> Nudge | None:
        if len(snapshot.target_programs) != 1:
            return None
        if snapshot.has_seen_first_target_celebration:
            return None
        program = snapshot.target_programs[0]
        return self._celebrate(
            "first_target",
            {"program_id": program.id, "program_name": program_label(program)},
            "first_target",
            context=program.id,
        )

    def _streak(self, snapshot: UserStateSnapshot) -> Nudge | None:
        streak = snapshot.login_streak
        if streak <= snapshot.previous_streak:
            return None
        milestones = set(self.option("streak_milestones", DEFAULT_STREAK_MILESTONES))
        monthly = int(self.option("streak_monthly_after", 30))
        if streak not in milestones and not (streak > monthly and streak % monthly == 0):
            return None
        return self._celebrate(f"streak_{streak}", {"streak_days": streak}, "streak")
