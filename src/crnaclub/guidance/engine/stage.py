"""
Guidance state derived from a snapshot: application stage, support mode and
risk signals. Deterministic; `snapshot.now` is the only clock.
"""

from __future__ import annotations

from crnaclub.guidance.engine.rules.evaluators.base import days_since, days_until
from crnaclub.guidance.engine.rules.models import GuidanceState, UserStateSnapshot

EXPLORING = "exploring"
STRATEGIZING = "strategizing"
EXECUTING = "executing"
INTERVIEWING = "interviewing"
POST_DECISION = "post_decision"

APPLICATION_STAGES = (EXPLORING, STRATEGIZING, EXECUTING, INTERVIEWING, POST_DECISION)

SUPPORT_MODES = {
    EXPLORING: "orientation",
    STRATEGIZING: "strategy",
    EXECUTING: "execution",
    INTERVIEWING: "confidence",
    POST_DECISION: "orientation",
}

STAGNATION = "stagnation"
MOMENTUM = "momentum"
DEADLINE_PRESSURE = "deadline_pressure"

MEANINGFUL_ACTIONS = {
    "log_clinical",
    "log_shadow",
    "log_eq",
    "complete_checklist_item",
    "submit_application",
    "add_target_program",
    "update_target_program",
    "complete_milestone_item",
}

STAGNATION_DAYS = 14
MOMENTUM_WINDOW_DAYS = 7
MOMENTUM_MIN_ACTIONS = 3
PRESSURE_WINDOW_DAYS = 30
PRESSURE_MAX_PROGRESS = 0.6


def compute_application_stage(snapshot: UserStateSnapshot) -> str:
    """Highest target-program status wins; an explicit stage on the snapshot overrides."""
    if snapshot.application_stage in APPLICATION_STAGES:
        return snapshot.application_stage

    targets = snapshot.target_programs
    if not targets:
        return STRATEGIZING if snapshot.saved_programs_count > 0 else EXPLORING

    statuses = {p.status for p in targets}
    if statuses & {"accepted", "waitlisted", "denied"}:
        return POST_DECISION
    if statuses & {"interview_invite", "interview_scheduled", "interview_complete"}:
        return INTERVIEWING
    if statuses & {"in_progress", "submitted"}:
        return EXECUTING
    return STRATEGIZING


def compute_support_mode(stage: str) -> str:
    return SUPPORT_MODES.get(stage, "orientation")


def compute_risk_signals(snapshot: UserStateSnapshot) -> list[str]:
    signals: list[str] = []
    now = snapshot.now

    meaningful = [
        a for a in snapshot.activity_log if a.action_type in MEANINGFUL_ACTIONS
    ]
    ages = [days_since(a.timestamp, now) for a in meaningful]

    since_last = min(ages) if ages else float("inf")
    if since_last >= STAGNATION_DAYS:
        signals.append(STAGNATION)

    recent = [age for age in ages if age <= MOMENTUM_WINDOW_DAYS]
    if len(recent) >= MOMENTUM_MIN_ACTIONS:
        # a returning user is no longer stagnating
        signals = [s for s in signals if s != STAGNATION]
        signals.append(MOMENTUM)

    for p in snapshot.target_programs:
        left = days_until(p.deadline, now)
        if left is None:
            continue
        if 0 < left < PRESSURE_WINDOW_DAYS and (
            p.checklist_progress or 0
        ) < PRESSURE_MAX_PROGRESS:
            signals.append(DEADLINE_PRESSURE)
            break

    return signals


def compute_guidance_state(snapshot: UserStateSnapshot) -> GuidanceState:
    stage = compute_application_stage(snapshot)
    return GuidanceState(
        application_stage=stage,
        support_mode=compute_support_mode(stage),
        risk_signals=compute_risk_signals(snapshot),
    )
