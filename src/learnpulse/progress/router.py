"""Progress API endpoints: completion, position, notes, bookmarks, goals."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from learnpulse.achievements.service import AchievementService
from learnpulse.auth.dependencies import get_current_learner_id
from learnpulse.database import get_session
from learnpulse.progress.catalog import SqlCourseCatalog
from learnpulse.progress.schemas import (
    AddBookmarkRequest,
    AddNoteRequest,
    Bookmark,
    BookmarksResponse,
    CompleteLessonRequest,
    CompleteLessonResponse,
    Note,
    NotesResponse,
    PositionResponse,
    ProgressSnapshot,
    StudyGoal,
    StudyGoalRequest,
    UpdatePositionRequest,
    WeeklyStatsResponse,
)
from learnpulse.progress.service import ProgressService
from learnpulse.redis_client import get_redis_optional

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"])


def _service(db: AsyncSession) -> ProgressService:
    return ProgressService(
        db,
        catalog=SqlCourseCatalog(db),
        achievements=AchievementService(db, redis=get_redis_optional()),
    )


@router.get("", response_model=list[ProgressSnapshot])
async def list_progress(
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> list[ProgressSnapshot]:
    return await _service(db).list_progress(learner_id)


@router.get("/{course_id}", response_model=ProgressSnapshot)
async def get_progress(
    course_id: str,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> ProgressSnapshot:
    """Get the learner's progress record for a course."""
    progress = await _service(db).get_progress(learner_id, course_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="No progress record found for this course")
    return progress


@router.post("/{course_id}/lesson-complete", response_model=CompleteLessonResponse)
async def complete_lesson(
    course_id: str,
    body: CompleteLessonRequest,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> CompleteLessonResponse:
    """Mark a lesson as completed."""
    return await _service(db).complete_lesson(
        learner_id,
        course_id,
        body.lesson_id,
        body.section_id,
        body.watch_time_seconds,
        body.quiz_score,
    )


@router.post("/{course_id}/position", response_model=PositionResponse)
async def update_position(
    course_id: str,
    body: UpdatePositionRequest,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> PositionResponse:
    """Update the current lesson and playback position."""
    current = await _service(db).update_position(
        learner_id, course_id, body.lesson_id, body.section_id, body.position_seconds
    )
    return PositionResponse(current_lesson=current)


# --- Notes ---


@router.post("/{course_id}/notes", response_model=Note)
async def add_note(
    course_id: str,
    body: AddNoteRequest,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> Note:
    return await _service(db).add_note(
        learner_id, course_id, body.lesson_id, body.content, body.timestamp_seconds, body.ai_generated
    )


@router.get("/{course_id}/notes/{lesson_id}", response_model=NotesResponse)
async def get_notes(
    course_id: str,
    lesson_id: str,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> NotesResponse:
    """Notes for one lesson, ordered by video timestamp."""
    return NotesResponse(notes=await _service(db).get_notes(learner_id, course_id, lesson_id))


@router.delete("/{course_id}/notes/{note_id}")
async def delete_note(
    course_id: str,
    note_id: str,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> dict:
    if not await _service(db).delete_note(learner_id, course_id, note_id):
        raise HTTPException(status_code=404, detail="Note not found")
    return {"deleted": True}


# --- Bookmarks ---


@router.post("/{course_id}/bookmarks", response_model=Bookmark)
async def add_bookmark(
    course_id: str,
    body: AddBookmarkRequest,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> Bookmark:
    return await _service(db).add_bookmark(
        learner_id, course_id, body.lesson_id, body.title, body.timestamp_seconds
    )


@router.get("/{course_id}/bookmarks", response_model=BookmarksResponse)
async def get_bookmarks(
    course_id: str,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> BookmarksResponse:
    """All bookmarks in the course, newest first."""
    return BookmarksResponse(bookmarks=await _service(db).get_bookmarks(learner_id, course_id))


@router.delete("/{course_id}/bookmarks/{bookmark_id}")
async def delete_bookmark(
    course_id: str,
    bookmark_id: str,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> dict:
    if not await _service(db).delete_bookmark(learner_id, course_id, bookmark_id):
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return {"deleted": True}


# --- Study goal and weekly stats ---


@router.put("/{course_id}/study-goal", response_model=StudyGoal)
async def set_study_goal(
    course_id: str,
    body: StudyGoalRequest,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> StudyGoal:
    return await _service(db).set_study_goal(learner_id, course_id, body.daily_minutes, body.weekly_minutes)


@router.get("/{course_id}/weekly-stats", response_model=WeeklyStatsResponse)
async def get_weekly_stats(
    course_id: str,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> WeeklyStatsResponse:
    current, weeks, goal = await _service(db).get_weekly_stats(learner_id, course_id)
    return WeeklyStatsResponse(current_week=current, weeks=weeks, study_goal=goal)
