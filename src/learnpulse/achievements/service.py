"""Achievement persistence with duplicate prevention and notification."""

from __future__ import annotations

import json
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from learnpulse.achievements.engine import Achievement, AchievementType, check_and_award
from learnpulse.clock import Clock, ensure_utc, utc_now
from learnpulse.db.models import LearnerAchievement
from learnpulse.progress.schemas import ProgressSnapshot

logger = logging.getLogger(__name__)

ACHIEVEMENT_CHANNEL = "pubsub:achievement_earned"


class AchievementService:
    """Grants achievements for a learner after progress changes."""

    def __init__(self, db: AsyncSession, redis: object | None = None, clock: Clock = utc_now) -> None:
        self.db = db
        self.redis = redis
        self.clock = clock

    async def list_achievements(self, learner_id: str) -> list[Achievement]:
        """All achievements of a learner, newest first."""
        result = await self.db.execute(
            select(LearnerAchievement)
            .where(LearnerAchievement.learner_id == learner_id)
            .order_by(LearnerAchievement.earned_at.desc())
        )
        return [
            Achievement(
                type=AchievementType(row.type),
                earned_at=ensure_utc(row.earned_at),
                course_id=row.course_id,
            )
            for row in result.scalars()
        ]

    async def award_for(self, progress: ProgressSnapshot) -> list[Achievement]:
        """Grant whatever progress qualifies for. Returns the newly persisted ones.

        Failures are logged and swallowed: the completion that triggered this
        has already been saved, and the next qualifying event re-runs the
        same idempotent check.
        """
        try:
            existing = await self.list_achievements(progress.learner_id)
            candidates = check_and_award(existing, progress, now=self.clock())
            granted = [a for a in candidates if await self._insert(progress.learner_id, a)]
        except Exception:
            logger.warning(
                "Achievement check failed for learner %s course %s",
                progress.learner_id,
                progress.course_id,
                exc_info=True,
            )
            await self.db.rollback()
            return []

        for achievement in granted:
            await self._emit_achievement_earned(progress.learner_id, achievement)
        return granted

    async def _insert(self, learner_id: str, achievement: Achievement) -> bool:
        """Insert one achievement. False if the unique index says it already exists."""
        self.db.add(
            LearnerAchievement(
                learner_id=learner_id,
                type=achievement.type.value,
                course_id=achievement.course_id,
                scope_key=achievement.scope_key,
                earned_at=achievement.earned_at,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False  # Race condition: granted by a concurrent request
        logger.info("Granted %s to learner %s", achievement.type.value, learner_id)
        return True

    async def _emit_achievement_earned(self, learner_id: str, achievement: Achievement) -> None:
        """Publish the grant for any listening notifier."""
        if self.redis is None:
            return
        try:
            await self.redis.publish(  # type: ignore[attr-defined]
                ACHIEVEMENT_CHANNEL,
                json.dumps({
                    "learner_id": learner_id,
                    "type": achievement.type.value,
                    "course_id": achievement.course_id,
                    "earned_at": achievement.earned_at.isoformat(),
                }),
            )
        except Exception:
            logger.warning("Failed to publish achievement_earned notification", exc_info=True)
