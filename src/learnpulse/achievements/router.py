"""Achievement API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from learnpulse.achievements.engine import Achievement
from learnpulse.achievements.service import AchievementService
from learnpulse.auth.dependencies import get_current_learner_id
from learnpulse.database import get_session

router = APIRouter(prefix="/api/v1", tags=["Achievements"])


class AchievementsResponse(BaseModel):
    achievements: list[Achievement]
    total: int


@router.get("/achievements", response_model=AchievementsResponse)
async def list_achievements(
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> AchievementsResponse:
    """The learner's achievements, newest first."""
    achievements = await AchievementService(db).list_achievements(learner_id)
    return AchievementsResponse(achievements=achievements, total=len(achievements))
