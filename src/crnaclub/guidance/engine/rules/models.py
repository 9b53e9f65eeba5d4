from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # naive timestamps are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase on input, dumps camelCase with by_alias."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------
# Nudges
# -----------------------------


class Urgency(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


URGENCY_RANK: Dict[Urgency, int] = {
    Urgency.critical: 0,
    Urgency.high: 1,
    Urgency.medium: 2,
    Urgency.low: 3,
}

DASHBOARD = "dashboard"
MOBILE = "mobile"
CELEBRATION = "celebration"
INLINE_PREFIX = "inline:"


def inline_page_key(surface: str) -> str | None:
    if surface.startswith(INLINE_PREFIX):
        return surface[len(INLINE_PREFIX) :]
    return None


def validate_surface(surface: str) -> str:
    if surface in (DASHBOARD, MOBILE, CELEBRATION):
        return surface
    key = inline_page_key(surface)
    if key:
        return surface
    raise ValueError(
        f"invalid surface {surface!r}: expected dashboard, mobile, celebration "
        "or inline:<pageKey>"
    )


class Nudge(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str
    engine_id: str
    urgency: Urgency
    surface: str = DASHBOARD
    # display text, link target, metadata; opaque to the feed stage
    payload: Dict[str, Any] = Field(default_factory=dict)

    # catalog prompt this nudge was rendered from, and its entity context
    prompt_id: Optional[str] = None
    context: Optional[str] = None
    # CelebratedEvents key; falls back to id
    event_id: Optional[str] = None

    @field_validator("surface")
    @classmethod
    def _check_surface(cls, v: str) -> str:
        return validate_surface(v)

    @property
    def celebration_key(self) -> str:
        return self.event_id or self.id


# -----------------------------
# Persisted interaction state
# -----------------------------


class NudgeState(CamelModel):
    dismiss_count: int = Field(default=0, ge=0)
    permanently_dismissed: bool = False
    snoozed_until: Optional[UtcDatetime] = None
    last_dismissed_at: Optional[UtcDatetime] = None


class DismissType(str, Enum):
    permanent = "permanent"
    snooze_7d = "snooze_7d"
    snooze_30d = "snooze_30d"


DISMISS_TYPE_DAYS: Dict[DismissType, int] = {
    DismissType.snooze_7d: 7,
    DismissType.snooze_30d: 30,
}


class DismissedPrompt(CamelModel):
    prompt_id: str
    context: Optional[str] = None
    dismissed_at: UtcDatetime
    dismiss_type: DismissType = DismissType.permanent


class InteractionLogEntry(CamelModel):
    prompt_id: str
    shown_at: UtcDatetime
    action: str


class StateBlob(BaseModel):
    """One per user. Top-level keys are the persisted layout, inner records camelCase."""

    model_config = ConfigDict(extra="ignore")

    tracker_nudges: Dict[str, NudgeState] = Field(default_factory=dict)
    dismissed_prompts: List[DismissedPrompt] = Field(default_factory=list)
    prompt_interactions: List[InteractionLogEntry] = Field(default_factory=list)
    celebrated_events: List[str] = Field(default_factory=list)
    last_nudge_shown: Dict[str, UtcDatetime] = Field(default_factory=dict)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# -----------------------------
# User state snapshot (read-only input)
# -----------------------------


class ChecklistItem(CamelModel):
    id: Optional[str] = None
    completed: bool = False
    due_date: Optional[UtcDatetime] = None


class ProgramPrerequisite(CamelModel):
    id: str
    course_type: Optional[str] = None
    required: bool = False

    @property
    def key(self) -> str:
        return self.course_type or self.id


class TargetProgram(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str
    name: Optional[str] = None
    # not_started | in_progress | submitted | interview_invite | interview_scheduled |
    # interview_complete | accepted | waitlisted | denied
    status: Optional[str] = None
    deadline: Optional[UtcDatetime] = None
    checklist_progress: Optional[float] = None
    checklist_items: List[ChecklistItem] = Field(default_factory=list)
    accepted_at: Optional[UtcDatetime] = None
    lor_required: int = 3
    interview_date: Optional[UtcDatetime] = None
    # in_person | virtual
    interview_type: Optional[str] = None
    # pending | accepted | rejected | waitlisted
    outcome: Optional[str] = None
    prerequisites: List[ProgramPrerequisite] = Field(default_factory=list)


class LetterRequest(CamelModel):
    id: str
    recommender_name: Optional[str] = None
    # not_requested | requested | received | declined
    status: Optional[str] = None
    requested_at: Optional[UtcDatetime] = None
    # None means the letter counts for every program
    program_ids: Optional[List[str]] = None


class CourseRecord(CamelModel):
    id: str
    course_type: Optional[str] = None
    # letter grade, e.g. "B+"
    grade: Optional[str] = None

    @property
    def key(self) -> str:
        return self.course_type or self.id


class AcademicProfile(CamelModel):
    completed_prerequisites: List[CourseRecord] = Field(default_factory=list)
    in_progress_prerequisites: List[CourseRecord] = Field(default_factory=list)
    planned_prerequisites: List[CourseRecord] = Field(default_factory=list)


class ActivityEntry(CamelModel):
    action_type: str
    timestamp: UtcDatetime


class UserStateSnapshot(CamelModel):
    """Point-in-time summary of user data. Every field is optional; rules that
    need a missing field do not fire."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow", frozen=True
    )

    user_id: Optional[str] = None
    now: UtcDatetime = Field(default_factory=utc_now)

    application_stage: Optional[str] = None

    last_login_at: Optional[UtcDatetime] = None
    login_streak: int = 0
    previous_streak: int = 0

    onboarding_complete: Optional[bool] = None
    onboarding_progress: int = 0
    onboarding_total_steps: int = 8
    # profile completeness flags, e.g. {"resume": True, "gpa": False}
    profile: Dict[str, bool] = Field(default_factory=dict)

    last_clinical_log_at: Optional[UtcDatetime] = None
    last_eq_log_at: Optional[UtcDatetime] = None
    last_shadow_log_at: Optional[UtcDatetime] = None
    shadow_hours: Optional[float] = None
    shadow_hours_goal: Optional[float] = None
    pending_event_logs: int = 0

    target_programs: List[TargetProgram] = Field(default_factory=list)
    saved_programs_count: int = 0
    letter_requests: List[LetterRequest] = Field(default_factory=list)
    # None means unknown; prerequisite rules do not fire
    academic_profile: Optional[AcademicProfile] = None

    checklist_completed: Optional[int] = None
    previous_checklist_completed: Optional[int] = None
    has_seen_first_target_celebration: bool = False

    activity_log: List[ActivityEntry] = Field(default_factory=list)


# -----------------------------
# Evaluation output
# -----------------------------


class NudgeStats(CamelModel):
    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class GuidanceState(CamelModel):
    application_stage: str
    support_mode: str
    risk_signals: List[str] = Field(default_factory=list)


class EvaluationResult(CamelModel):
    dashboard: List[Nudge] = Field(default_factory=list)
    inline: Dict[str, List[Nudge]] = Field(default_factory=dict)
    mobile: List[Nudge] = Field(default_factory=list)
    celebrations: List[Nudge] = Field(default_factory=list)
    stats: NudgeStats = Field(default_factory=NudgeStats)
    by_engine: Dict[str, List[Nudge]] = Field(default_factory=dict)
    all: List[Nudge] = Field(default_factory=list)
    failed_engines: List[str] = Field(default_factory=list)
    guidance: Optional[GuidanceState] = None
