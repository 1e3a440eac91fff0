"""Progress service: lesson completion, playback position, notes and bookmarks."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from learnpulse.achievements.service import AchievementService
from learnpulse.clock import Clock, utc_now
from learnpulse.config import Settings, get_settings
from learnpulse.errors import ProgressConflictError
from learnpulse.progress import tracker
from learnpulse.progress.catalog import CourseCatalog
from learnpulse.progress.schemas import (
    Bookmark,
    CompleteLessonResponse,
    CurrentLesson,
    Note,
    ProgressSnapshot,
    StudyGoal,
    WeeklyStat,
)
from learnpulse.progress.store import ProgressRepository
from learnpulse.rounding import round_half_up

logger = logging.getLogger(__name__)

Transition = Callable[[ProgressSnapshot, datetime], ProgressSnapshot]


class ProgressService:
    """Applies tracker transitions to stored progress, one atomic write each."""

    def __init__(
        self,
        db: AsyncSession,
        catalog: CourseCatalog,
        achievements: AchievementService | None = None,
        clock: Clock = utc_now,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.catalog = catalog
        self.achievements = achievements
        self.clock = clock
        self.settings = settings or get_settings()
        self.repo = ProgressRepository(
            db,
            default_goal=StudyGoal(
                daily_minutes=self.settings.default_daily_goal_minutes,
                weekly_minutes=self.settings.default_weekly_goal_minutes,
            ),
        )

    async def _mutate(self, learner_id: str, course_id: str, transition: Transition) -> ProgressSnapshot:
        """Read, transform, conditionally write; re-read and retry on conflict."""
        attempts = self.settings.progress_write_retries + 1
        attempt = 0
        while True:
            attempt += 1
            now = self.clock()
            before = await self.repo.load_or_create(learner_id, course_id, now)
            after = transition(before, now)
            try:
                return await self.repo.save(before, after)
            except ProgressConflictError:
                if attempt >= attempts:
                    logger.warning(
                        "Giving up on progress write for %s/%s after %d attempts",
                        learner_id, course_id, attempts,
                    )
                    raise
                logger.info(
                    "Progress write conflict for %s/%s, retrying (attempt %d/%d)",
                    learner_id, course_id, attempt, attempts,
                )

    # --- Completion ---

    async def complete_lesson(
        self,
        learner_id: str,
        course_id: str,
        lesson_id: str,
        section_id: str,
        watch_time_seconds: int = 0,
        quiz_score: float | None = None,
    ) -> CompleteLessonResponse:
        """Mark a lesson complete, recompute progress and weekly stats, grant achievements."""
        total_lessons = await self.catalog.total_lessons(course_id)
        minutes = round_half_up(watch_time_seconds / 60)

        def transition(snapshot: ProgressSnapshot, now: datetime) -> ProgressSnapshot:
            snapshot = tracker.complete_lesson(
                snapshot, lesson_id, section_id, watch_time_seconds, quiz_score, now=now
            )
            snapshot = tracker.calculate_progress(snapshot, total_lessons, now=now)
            return tracker.update_weekly_stats(snapshot, minutes, 1, now=now)

        progress = await self._mutate(learner_id, course_id, transition)

        if self.achievements is not None:
            await self.achievements.award_for(progress)

        return CompleteLessonResponse(
            overall_progress=progress.overall_progress,
            completed_lessons_count=len(progress.completed_lessons),
            streak_days=progress.streak_days,
        )

    async def update_position(
        self,
        learner_id: str,
        course_id: str,
        lesson_id: str,
        section_id: str,
        position_seconds: float = 0,
    ) -> CurrentLesson:
        """Store the playback cursor for resuming later."""
        current = CurrentLesson(lesson_id=lesson_id, section_id=section_id, position_seconds=position_seconds)
        await self._mutate(
            learner_id,
            course_id,
            lambda s, now: tracker.update_current_lesson(s, lesson_id, section_id, position_seconds, now=now),
        )
        return current

    # --- Notes ---

    async def add_note(
        self,
        learner_id: str,
        course_id: str,
        lesson_id: str,
        content: str,
        timestamp_seconds: float,
        ai_generated: bool = False,
    ) -> Note:
        created: list[Note] = []

        def transition(snapshot: ProgressSnapshot, now: datetime) -> ProgressSnapshot:
            snapshot, note = tracker.add_note(snapshot, lesson_id, content, timestamp_seconds, ai_generated, now=now)
            created[:] = [note]
            return snapshot

        await self._mutate(learner_id, course_id, transition)
        return created[0]

    async def get_notes(self, learner_id: str, course_id: str, lesson_id: str) -> list[Note]:
        progress = await self.repo.load(learner_id, course_id)
        if progress is None:
            return []
        return tracker.notes_for_lesson(progress, lesson_id)

    async def delete_note(self, learner_id: str, course_id: str, note_id: str) -> bool:
        """Delete a note. False if there is no progress record or no such note."""
        progress = await self.repo.load(learner_id, course_id)
        if progress is None or not any(n.id == note_id for n in progress.notes):
            return False
        await self._mutate(learner_id, course_id, lambda s, _now: tracker.delete_note(s, note_id))
        return True

    # --- Bookmarks ---

    async def add_bookmark(
        self,
        learner_id: str,
        course_id: str,
        lesson_id: str,
        title: str,
        timestamp_seconds: float,
    ) -> Bookmark:
        created: list[Bookmark] = []

        def transition(snapshot: ProgressSnapshot, now: datetime) -> ProgressSnapshot:
            snapshot, bookmark = tracker.add_bookmark(snapshot, lesson_id, title, timestamp_seconds, now=now)
            created[:] = [bookmark]
            return snapshot

        await self._mutate(learner_id, course_id, transition)
        return created[0]

    async def get_bookmarks(self, learner_id: str, course_id: str) -> list[Bookmark]:
        progress = await self.repo.load(learner_id, course_id)
        if progress is None:
            return []
        return tracker.bookmarks_newest_first(progress)

    async def delete_bookmark(self, learner_id: str, course_id: str, bookmark_id: str) -> bool:
        """Delete a bookmark. False if there is no progress record or no such bookmark."""
        progress = await self.repo.load(learner_id, course_id)
        if progress is None or not any(b.id == bookmark_id for b in progress.bookmarks):
            return False
        await self._mutate(learner_id, course_id, lambda s, _now: tracker.delete_bookmark(s, bookmark_id))
        return True

    # --- Goals and stats ---

    async def get_progress(self, learner_id: str, course_id: str) -> ProgressSnapshot | None:
        return await self.repo.load(learner_id, course_id)

    async def list_progress(self, learner_id: str) -> list[ProgressSnapshot]:
        """Every course the learner has started, most recently accessed first."""
        return await self.repo.list_for_learner(learner_id)

    async def set_study_goal(
        self, learner_id: str, course_id: str, daily_minutes: int, weekly_minutes: int
    ) -> StudyGoal:
        progress = await self._mutate(
            learner_id,
            course_id,
            lambda s, _now: tracker.set_study_goal(s, daily_minutes, weekly_minutes),
        )
        return progress.study_goal

    async def get_weekly_stats(self, learner_id: str, course_id: str) -> tuple[WeeklyStat, list[WeeklyStat], StudyGoal]:
        """Current week's bucket, all buckets newest first, and the goal."""
        progress = await self.repo.load(learner_id, course_id)
        week_start = tracker.get_week_start(self.clock())
        if progress is None:
            return WeeklyStat(week_start=week_start), [], self.repo.default_goal
        weeks = sorted(progress.weekly_stats, key=lambda w: w.week_start, reverse=True)
        return tracker.weekly_stats_for(progress, week_start), weeks, progress.study_goal
