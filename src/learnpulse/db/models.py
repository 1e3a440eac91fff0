"""ORM models for progress, achievements, analytics sessions and report jobs.

`courses` belongs to the catalog service and already exists in the shared
database; it is mapped read-only with extend_existing=True.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnpulse.db.base import Base, BigIntPK, JSONDocument


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Course catalog (external, read-only)
# ---------------------------------------------------------------------------


class Course(Base):
    """Maps to the catalog's 'courses' table."""

    __tablename__ = "courses"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    total_lessons: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


# ---------------------------------------------------------------------------
# Learning progress (one document per learner x course)
# ---------------------------------------------------------------------------


class LearningProgress(Base):
    """Per-(learner, course) progress document. `version` guards concurrent writes."""

    __tablename__ = "learning_progress"
    __table_args__ = (
        UniqueConstraint("learner_id", "course_id", name="uq_progress_learner_course"),
        Index("idx_progress_last_accessed", "last_accessed_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    completed_lessons: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)
    current_lesson: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    overall_progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_watch_time_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_streak_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)
    bookmarks: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)
    weekly_stats: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)
    study_goal: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_accessed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class LearnerAchievement(Base):
    """Granted achievement. scope_key is the course id, or '' for global types."""

    __tablename__ = "learner_achievements"
    __table_args__ = (
        UniqueConstraint("learner_id", "type", "scope_key", name="uq_achievement_scope"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    course_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    scope_key: Mapped[str] = mapped_column(String(64), nullable=False, server_default="")
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Analytics sessions
# ---------------------------------------------------------------------------


class AnalyticsSession(Base):
    """Interaction telemetry window for one (learner, course, lesson) triple."""

    __tablename__ = "analytics_sessions"
    __table_args__ = (
        # At most one open session per triple; makes find-or-create atomic.
        Index(
            "uq_analytics_open_session",
            "learner_id",
            "course_id",
            "lesson_id",
            unique=True,
            postgresql_where=text("end_time IS NULL"),
            sqlite_where=text("end_time IS NULL"),
        ),
        Index("idx_analytics_learner_created", "learner_id", "created_at"),
        Index("idx_analytics_course_created", "course_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lesson_id: Mapped[str] = mapped_column(String(64), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    video_progress_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    interactions: Mapped[list[AnalyticsInteraction]] = relationship(
        "AnalyticsInteraction",
        back_populates="session",
        order_by="AnalyticsInteraction.id",
    )


class AnalyticsInteraction(Base):
    """Append-only interaction log entry."""

    __tablename__ = "analytics_interactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("analytics_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    video_timestamp_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)

    session: Mapped[AnalyticsSession] = relationship("AnalyticsSession", back_populates="interactions")


# ---------------------------------------------------------------------------
# Report jobs
# ---------------------------------------------------------------------------


class ReportJob(Base):
    """Detached performance-report generation. Terminal states: completed, failed."""

    __tablename__ = "report_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    course_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timeframe: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="processing")
    report: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
