"""Analytics API endpoints: tracking, metrics, reports, instructor insights."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from learnpulse.analytics import reports
from learnpulse.analytics.insights import create_insight_generator
from learnpulse.analytics.schemas import (
    CourseInsights,
    PerformanceMetrics,
    PerformanceReport,
    ReportJobResponse,
    TrackRequest,
    TrackResponse,
)
from learnpulse.analytics.service import AnalyticsService
from learnpulse.auth.dependencies import get_current_learner_id, require_instructor
from learnpulse.database import get_session

router = APIRouter(prefix="/api/v1/analytics", tags=["Analytics"])


def _service(db: AsyncSession) -> AnalyticsService:
    return AnalyticsService(db, generator=create_insight_generator())


@router.post("/track", response_model=TrackResponse)
async def track(
    body: TrackRequest,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> TrackResponse:
    """Record a player interaction and/or session progress."""
    session_id = await _service(db).track_interaction(
        learner_id,
        body.course_id,
        body.lesson_id,
        action=body.action,
        data=body.data,
        session_data=body.session_data,
    )
    return TrackResponse(session_id=session_id)


@router.get("/performance", response_model=PerformanceMetrics)
async def get_performance(
    course_id: str | None = Query(None),
    timeframe: str = Query("7d"),
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> PerformanceMetrics:
    return await _service(db).get_performance_metrics(learner_id, course_id, timeframe)


@router.get("/reports/performance", response_model=PerformanceReport)
async def get_performance_report(
    course_id: str | None = Query(None),
    timeframe: str = Query("7d"),
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> PerformanceReport:
    """Generate a report inline. Use POST /reports for a background job."""
    return await _service(db).get_performance_report(learner_id, course_id, timeframe)


@router.post("/reports", response_model=ReportJobResponse, status_code=202)
async def start_report(
    course_id: str | None = Query(None),
    timeframe: str = Query("30d"),
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> ReportJobResponse:
    return await reports.start_report_job(
        db, learner_id, course_id, timeframe, generator=create_insight_generator()
    )


@router.get("/reports/{job_id}", response_model=ReportJobResponse)
async def get_report(
    job_id: str,
    learner_id: str = Depends(get_current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> ReportJobResponse:
    return await reports.get_report_job(db, job_id, learner_id)


@router.get("/course/{course_id}", response_model=CourseInsights)
async def get_course_insights(
    course_id: str,
    timeframe: str = Query("30d"),
    _instructor_id: str = Depends(require_instructor),
    db: AsyncSession = Depends(get_session),
) -> CourseInsights:
    """Aggregate engagement for a course (instructors and admins only)."""
    return await _service(db).get_course_insights(course_id, timeframe)
