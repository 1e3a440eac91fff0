"""Progress persistence with optimistic concurrency.

Writes are a single conditional UPDATE keyed on (id, version). A writer that
read an older version updates zero rows and gets ProgressConflictError
instead of silently overwriting someone else's streak or weekly bucket.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from learnpulse.clock import ensure_utc
from learnpulse.db.models import LearningProgress
from learnpulse.errors import ProgressConflictError
from learnpulse.progress.schemas import (
    Bookmark,
    CompletedLesson,
    CurrentLesson,
    Note,
    ProgressSnapshot,
    StudyGoal,
    WeeklyStat,
)

logger = logging.getLogger(__name__)


def snapshot_from_row(row: LearningProgress) -> ProgressSnapshot:
    """Build an immutable snapshot from an ORM row."""
    return ProgressSnapshot(
        id=row.id,
        learner_id=row.learner_id,
        course_id=row.course_id,
        completed_lessons=tuple(CompletedLesson.model_validate(c) for c in row.completed_lessons or []),
        current_lesson=CurrentLesson.model_validate(row.current_lesson) if row.current_lesson else None,
        overall_progress=row.overall_progress,
        total_watch_time_seconds=row.total_watch_time_seconds,
        streak_days=row.streak_days,
        last_streak_date=row.last_streak_date,
        notes=tuple(Note.model_validate(n) for n in row.notes or []),
        bookmarks=tuple(Bookmark.model_validate(b) for b in row.bookmarks or []),
        weekly_stats=tuple(WeeklyStat.model_validate(w) for w in row.weekly_stats or []),
        study_goal=StudyGoal.model_validate(row.study_goal or {}),
        started_at=ensure_utc(row.started_at),
        last_accessed_at=ensure_utc(row.last_accessed_at),
        completed_at=ensure_utc(row.completed_at) if row.completed_at else None,
        version=row.version,
    )


def _document_values(snapshot: ProgressSnapshot) -> dict[str, Any]:
    """Column values for every mutable field of the snapshot."""
    return {
        "completed_lessons": [c.model_dump(mode="json") for c in snapshot.completed_lessons],
        "current_lesson": snapshot.current_lesson.model_dump(mode="json") if snapshot.current_lesson else None,
        "overall_progress": snapshot.overall_progress,
        "total_watch_time_seconds": snapshot.total_watch_time_seconds,
        "streak_days": snapshot.streak_days,
        "last_streak_date": snapshot.last_streak_date,
        "notes": [n.model_dump(mode="json") for n in snapshot.notes],
        "bookmarks": [b.model_dump(mode="json") for b in snapshot.bookmarks],
        "weekly_stats": [w.model_dump(mode="json") for w in snapshot.weekly_stats],
        "study_goal": snapshot.study_goal.model_dump(mode="json"),
        "last_accessed_at": snapshot.last_accessed_at,
        "completed_at": snapshot.completed_at,
    }


class ProgressRepository:
    """Loads and saves ProgressSnapshots for (learner, course) pairs."""

    def __init__(self, db: AsyncSession, default_goal: StudyGoal | None = None) -> None:
        self.db = db
        self.default_goal = default_goal or StudyGoal()

    async def load(self, learner_id: str, course_id: str) -> ProgressSnapshot | None:
        """Read the current committed state, bypassing any cached row."""
        result = await self.db.execute(
            select(LearningProgress)
            .where(
                LearningProgress.learner_id == learner_id,
                LearningProgress.course_id == course_id,
            )
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return snapshot_from_row(row) if row else None

    async def load_or_create(self, learner_id: str, course_id: str, now: datetime) -> ProgressSnapshot:
        """Get the progress record, creating an empty one on first use."""
        existing = await self.load(learner_id, course_id)
        if existing is not None:
            return existing

        row = LearningProgress(
            learner_id=learner_id,
            course_id=course_id,
            completed_lessons=[],
            overall_progress=0,
            total_watch_time_seconds=0,
            streak_days=0,
            notes=[],
            bookmarks=[],
            weekly_stats=[],
            study_goal=self.default_goal.model_dump(mode="json"),
            started_at=now,
            last_accessed_at=now,
            version=1,
        )
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another request created the row first; use theirs.
            await self.db.rollback()
            logger.info("Progress row for %s/%s created concurrently", learner_id, course_id)
            winner = await self.load(learner_id, course_id)
            if winner is None:
                raise ProgressConflictError(learner_id, course_id) from None
            return winner
        return snapshot_from_row(row)

    async def save(self, before: ProgressSnapshot, after: ProgressSnapshot) -> ProgressSnapshot:
        """Persist after if the stored version is still before.version.

        Raises ProgressConflictError when another writer got there first.
        """
        if before.id is None or before.id != after.id:
            msg = "save() needs two snapshots of the same persisted record"
            raise ValueError(msg)

        result = await self.db.execute(
            update(LearningProgress)
            .where(
                LearningProgress.id == before.id,
                LearningProgress.version == before.version,
            )
            .values(**_document_values(after), version=before.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise ProgressConflictError(before.learner_id, before.course_id)

        await self.db.commit()
        return after.model_copy(update={"version": before.version + 1})

    async def list_for_learner(self, learner_id: str) -> list[ProgressSnapshot]:
        """All progress records of a learner, most recently accessed first."""
        result = await self.db.execute(
            select(LearningProgress)
            .where(LearningProgress.learner_id == learner_id)
            .order_by(LearningProgress.last_accessed_at.desc())
            .execution_options(populate_existing=True)
        )
        return [snapshot_from_row(row) for row in result.scalars()]
