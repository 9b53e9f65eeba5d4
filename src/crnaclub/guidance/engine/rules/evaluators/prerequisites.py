"""Prerequisite gaps for target programs and low science grades."""

from __future__ import annotations

from crnaclub.guidance.engine.rules.evaluators.base import CatalogRule, register_kind
from crnaclub.guidance.engine.rules.models import (
    AcademicProfile,
    Nudge,
    TargetProgram,
    UserStateSnapshot,
)

# course id -> (display name, course ids it also satisfies)
COURSES: dict[str, tuple[str, tuple[str, ...]]] = {
    "anatomy": ("Anatomy", ()),
    "physiology": ("Physiology", ()),
    "anatomy_physiology": ("Anatomy & Physiology", ("anatomy", "physiology")),
    "general_chemistry": ("General Chemistry", ()),
    "organic_chemistry": ("Organic Chemistry", ("general_chemistry",)),
    "biochemistry": ("Biochemistry", ("organic_chemistry", "general_chemistry")),
    "statistics": ("Statistics", ()),
    "physics": ("Physics", ()),
    "pathophysiology": ("Pathophysiology", ()),
    "pharmacology": ("Pharmacology", ()),
    "biology": ("Biology", ()),
    "microbiology": ("Microbiology", ()),
}

DEFAULT_REQUIRED = ["anatomy", "physiology", "general_chemistry", "statistics"]

# B- and below
DEFAULT_LOW_GRADES = ["B-", "C+", "C", "C-", "D+", "D", "D-", "F"]


def course_name(course_id: str) -> str:
    if course_id in COURSES:
        return COURSES[course_id][0]
    return course_id.replace("_", " ").title()


def required_courses(programs: list[TargetProgram], default: list[str]) -> list[str]:
    """Required course ids across target programs, in first-seen order."""
    required: dict[str, None] = {}
    for program in programs:
        for prereq in program.prerequisites:
            if prereq.required:
                required.setdefault(prereq.key)
    return list(required) or list(default)


def covered_courses(profile: AcademicProfile) -> set[str]:
    """Completed, in-progress or planned, plus what completed courses satisfy."""
    completed = {c.key for c in profile.completed_prerequisites}
    for course_id in list(completed):
        completed.update(COURSES.get(course_id, ("", ()))[1])
    return (
        completed
        | {c.key for c in profile.in_progress_prerequisites}
        | {c.key for c in profile.planned_prerequisites}
    )


@register_kind("prerequisite_gap")
class PrerequisiteGapRule(CatalogRule):
    """
    Needs `snapshot.academic_profile`. Emits one `gap` nudge per required
    course that is not completed, in progress or planned (programs' required
    prerequisites, else `default_required`), and one `low_grade` nudge per
    completed science course graded in `low_grades`.
    """

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        profile = snapshot.academic_profile
        if profile is None:
            return []
        return self._gaps(snapshot, profile) + self._low_grades(profile)

    def _gaps(self, snapshot: UserStateSnapshot, profile: AcademicProfile) -> list[Nudge]:
        default = self.option("default_required", DEFAULT_REQUIRED)
        covered = covered_courses(profile)
        nudges: list[Nudge] = []

        for course_id in required_courses(snapshot.target_programs, default):
            if course_id in covered:
                continue
            nudges.append(
                self.make_nudge(
                    self.nudge_id("gap", course_id),
                    {"course_id": course_id, "course_name": course_name(course_id)},
                    variant="gap",
                    urgency=self.option("gap_urgency", "medium"),
                    context=course_id,
                )
            )
        return nudges

    def _low_grades(self, profile: AcademicProfile) -> list[Nudge]:
        low = {g.upper() for g in self.option("low_grades", DEFAULT_LOW_GRADES)}
        nudges: list[Nudge] = []

        for course in profile.completed_prerequisites:
            if course.key not in COURSES or not course.grade:
                continue
            grade = course.grade.strip().upper()
            if grade not in low:
                continue
            nudges.append(
                self.make_nudge(
                    self.nudge_id("grade", course.key),
                    {
                        "course_id": course.key,
                        "course_name": course_name(course.key),
                        "grade": grade,
                    },
                    variant="low_grade",
                    urgency=self.option("grade_urgency", "low"),
                    context=course.key,
                )
            )
        return nudges
