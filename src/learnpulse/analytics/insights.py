"""
Learner insights and performance-report assembly.

Insights come from an external generator service when one is configured.
Without one, or when it fails, a deterministic rule-based set is used.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

import httpx
import structlog

from learnpulse.analytics.schemas import Insights, PerformanceMetrics, PerformanceReport, ReportSummary
from learnpulse.config import get_settings

logger = structlog.get_logger()

DEFAULT_STRENGTH = "Good progress overall"
DEFAULT_IMPROVEMENT = "Continue current learning pace"

PLACEHOLDER_RECOMMENDATIONS = [
    "Review notes after each session",
    "Practice with quiz questions",
    "Join study groups for discussion",
    "Set specific learning goals",
]


class InsightGenerator(ABC):
    """Turns a metrics bundle into strengths, improvements and recommendations."""

    @abstractmethod
    async def generate_insights(self, metrics: PerformanceMetrics) -> Insights: ...


def placeholder_insights(metrics: PerformanceMetrics) -> Insights:
    """Rule-based insights from engagement and completion only."""
    strengths: list[str] = []
    improvements: list[str] = []

    if metrics.engagement_score > 70:
        strengths.append("Excellent engagement with course materials")
        strengths.append("Consistent learning habits")
    if metrics.completion_rate > 75:
        strengths.append("Strong course completion rate")

    if metrics.engagement_score < 80:
        improvements.append("Increase interaction with video controls and features")
    if metrics.completion_rate < 90:
        improvements.append("Complete all lesson materials for better understanding")

    return Insights(
        strengths=strengths or [DEFAULT_STRENGTH],
        improvements=improvements or [DEFAULT_IMPROVEMENT],
        recommendations=list(PLACEHOLDER_RECOMMENDATIONS),
        learning_pattern="Balanced learner with steady progress",
        model="placeholder",
    )


class HttpInsightGenerator(InsightGenerator):
    """POSTs the metrics JSON to an insight service and parses its reply."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def generate_insights(self, metrics: PerformanceMetrics) -> Insights:
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(
                self.url,
                json={"metrics": metrics.model_dump(mode="json")},
                timeout=self.timeout,
            )
            response.raise_for_status()
        return Insights.model_validate(response.json())


def create_insight_generator() -> InsightGenerator | None:
    """Generator configured by insight_generator_url, or None when unset."""
    settings = get_settings()
    if not settings.insight_generator_url:
        return None
    return HttpInsightGenerator(settings.insight_generator_url, timeout=settings.insight_timeout_seconds)


async def resolve_insights(metrics: PerformanceMetrics, generator: InsightGenerator | None) -> Insights:
    """Ask the generator, falling back to placeholder insights on any failure."""
    if generator is None:
        return placeholder_insights(metrics)
    try:
        return await generator.generate_insights(metrics)
    except Exception:
        logger.warning("insight_generator_failed", generator=type(generator).__name__, exc_info=True)
        return placeholder_insights(metrics)


def format_watch_time(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"


def build_report(metrics: PerformanceMetrics, insights: Insights, now: datetime) -> PerformanceReport:
    return PerformanceReport(
        metrics=metrics,
        insights=insights,
        summary=ReportSummary(
            total_sessions=metrics.total_sessions,
            average_engagement=f"{metrics.engagement_score}%",
            average_completion=f"{metrics.completion_rate}%",
            total_watch_time=format_watch_time(metrics.total_watch_time_minutes),
        ),
        generated_at=now,
    )
