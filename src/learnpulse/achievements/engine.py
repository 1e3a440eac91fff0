"""Achievement rules evaluated against a progress snapshot."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from learnpulse.clock import utc_now
from learnpulse.progress.schemas import ProgressSnapshot


class AchievementType(str, Enum):
    FIRST_COURSE = "first_course"
    COURSE_COMPLETED = "course_completed"
    STREAK_7 = "streak_7"
    STREAK_30 = "streak_30"


# Types granted once per course; all others are granted once per learner.
COURSE_SCOPED = frozenset({AchievementType.COURSE_COMPLETED})

# --- Streak achievement thresholds (days) ---
STREAK_ACHIEVEMENT_MAP = {
    7: AchievementType.STREAK_7,
    30: AchievementType.STREAK_30,
}


class Achievement(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: AchievementType
    earned_at: datetime
    course_id: str | None = None

    @property
    def scope_key(self) -> str:
        """Uniqueness scope: the course for per-course types, '' for global ones."""
        if self.type in COURSE_SCOPED:
            return self.course_id or ""
        return ""


def has_achievement(
    existing: Iterable[Achievement],
    achievement_type: AchievementType,
    course_id: str | None = None,
) -> bool:
    """Check whether an achievement of this type (and course, if scoped) was granted."""
    for achievement in existing:
        if achievement.type != achievement_type:
            continue
        if achievement_type in COURSE_SCOPED and achievement.course_id != course_id:
            continue
        return True
    return False


def check_and_award(
    existing: Iterable[Achievement],
    progress: ProgressSnapshot,
    now: datetime | None = None,
) -> list[Achievement]:
    """Return the achievements progress now qualifies for and does not have yet.

    Rules run in a fixed order: course completion (first_course, then
    course_completed for this course), then streak thresholds. Nothing
    already granted is returned again and nothing is ever revoked.
    """
    if now is None:
        now = utc_now()
    held = list(existing)
    awarded: list[Achievement] = []

    def grant(achievement_type: AchievementType, course_id: str | None = None) -> None:
        if has_achievement(held, achievement_type, course_id):
            return
        achievement = Achievement(type=achievement_type, earned_at=now, course_id=course_id)
        held.append(achievement)
        awarded.append(achievement)

    if progress.overall_progress >= 100:
        # first_course is global but remembers which course earned it
        grant(AchievementType.FIRST_COURSE, progress.course_id)
        grant(AchievementType.COURSE_COMPLETED, progress.course_id)

    for threshold, achievement_type in STREAK_ACHIEVEMENT_MAP.items():
        if progress.streak_days >= threshold:
            grant(achievement_type)

    return awarded
