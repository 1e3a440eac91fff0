"""Analytics service: interaction tracking, metrics, reports and course insights."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from learnpulse.analytics import metrics, sessions
from learnpulse.analytics.insights import InsightGenerator, build_report, resolve_insights
from learnpulse.analytics.schemas import CourseInsights, PerformanceMetrics, PerformanceReport, SessionUpdate
from learnpulse.clock import Clock, utc_now
from learnpulse.config import Settings, get_settings


class AnalyticsService:
    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        generator: InsightGenerator | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.generator = generator
        self.settings = settings or get_settings()

    async def track_interaction(
        self,
        learner_id: str,
        course_id: str,
        lesson_id: str,
        action: str | None = None,
        data: dict | None = None,
        session_data: SessionUpdate | None = None,
    ) -> str:
        """Record an interaction and/or session update; returns the session id."""
        return await sessions.track(
            self.db,
            learner_id,
            course_id,
            lesson_id,
            now=self.clock(),
            action=action,
            data=data,
            session_update=session_data,
        )

    async def get_performance_metrics(
        self,
        learner_id: str,
        course_id: str | None = None,
        timeframe: str = metrics.DEFAULT_TIMEFRAME,
    ) -> PerformanceMetrics:
        now = self.clock()
        timeframe = metrics.normalize_timeframe(timeframe)
        records = await sessions.load_sessions(
            self.db, learner_id, since=metrics.timeframe_start(timeframe, now), course_id=course_id
        )
        return metrics.calculate_metrics(
            records, timeframe, now, completion_threshold=self.settings.completion_threshold_percent
        )

    async def get_performance_report(
        self,
        learner_id: str,
        course_id: str | None = None,
        timeframe: str = metrics.DEFAULT_TIMEFRAME,
    ) -> PerformanceReport:
        """Metrics plus generated (or fallback) insights and a display summary."""
        performance = await self.get_performance_metrics(learner_id, course_id, timeframe)
        insights = await resolve_insights(performance, self.generator)
        return build_report(performance, insights, self.clock())

    async def get_course_insights(self, course_id: str, timeframe: str = "30d") -> CourseInsights:
        since = metrics.timeframe_start(timeframe, self.clock())
        return metrics.course_insights(await sessions.load_course_sessions(self.db, course_id, since))
