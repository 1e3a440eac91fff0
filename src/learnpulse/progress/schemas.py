"""Progress snapshots and API models.

Snapshots are frozen; tracker functions return new snapshots instead of
mutating, and the repository persists the difference atomically.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid.uuid4())


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Snapshot parts ---


class StudyGoal(_Frozen):
    daily_minutes: int = 30
    weekly_minutes: int = 210


class CompletedLesson(_Frozen):
    lesson_id: str
    section_id: str
    completed_at: datetime
    watch_time_seconds: int = 0
    quiz_score: float | None = None
    quiz_attempts: int = 0


class CurrentLesson(_Frozen):
    lesson_id: str
    section_id: str
    position_seconds: float = 0


class Note(_Frozen):
    id: str = Field(default_factory=_new_id)
    lesson_id: str
    content: str
    timestamp_seconds: float
    created_at: datetime
    ai_generated: bool = False


class Bookmark(_Frozen):
    id: str = Field(default_factory=_new_id)
    lesson_id: str
    title: str
    timestamp_seconds: float
    created_at: datetime


class WeeklyStat(_Frozen):
    week_start: date
    minutes_studied: int = 0
    lessons_completed: int = 0
    goal_achieved: bool = False


class ProgressSnapshot(_Frozen):
    """Immutable view of one learner's progress through one course."""

    id: str | None = None
    learner_id: str
    course_id: str
    completed_lessons: tuple[CompletedLesson, ...] = ()
    current_lesson: CurrentLesson | None = None
    overall_progress: int = 0
    total_watch_time_seconds: int = 0
    streak_days: int = 0
    last_streak_date: date | None = None
    notes: tuple[Note, ...] = ()
    bookmarks: tuple[Bookmark, ...] = ()
    weekly_stats: tuple[WeeklyStat, ...] = ()
    study_goal: StudyGoal = StudyGoal()
    started_at: datetime
    last_accessed_at: datetime
    completed_at: datetime | None = None
    version: int = 0


# --- Requests ---


class CompleteLessonRequest(BaseModel):
    lesson_id: str = Field(min_length=1, max_length=64)
    section_id: str = Field(min_length=1, max_length=64)
    watch_time_seconds: int = Field(default=0, ge=0)
    quiz_score: float | None = Field(default=None, ge=0, le=100)


class UpdatePositionRequest(BaseModel):
    lesson_id: str = Field(min_length=1, max_length=64)
    section_id: str = Field(min_length=1, max_length=64)
    position_seconds: float = Field(default=0, ge=0)


class AddNoteRequest(BaseModel):
    lesson_id: str = Field(min_length=1, max_length=64)
    content: str = Field(min_length=1, max_length=5000)
    timestamp_seconds: float = Field(ge=0)
    ai_generated: bool = False


class AddBookmarkRequest(BaseModel):
    lesson_id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=200)
    timestamp_seconds: float = Field(ge=0)


class StudyGoalRequest(BaseModel):
    daily_minutes: int = Field(ge=0, le=24 * 60)
    weekly_minutes: int = Field(ge=0, le=7 * 24 * 60)


# --- Responses ---


class CompleteLessonResponse(BaseModel):
    overall_progress: int
    completed_lessons_count: int
    streak_days: int


class PositionResponse(BaseModel):
    current_lesson: CurrentLesson


class NotesResponse(BaseModel):
    notes: list[Note]


class BookmarksResponse(BaseModel):
    bookmarks: list[Bookmark]


class WeeklyStatsResponse(BaseModel):
    current_week: WeeklyStat
    weeks: list[WeeklyStat]
    study_goal: StudyGoal
