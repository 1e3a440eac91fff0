"""Placeholder insights, generator fallback and report assembly."""

from datetime import datetime, timezone

import httpx
import pytest

from learnpulse.analytics.insights import (
    DEFAULT_IMPROVEMENT,
    DEFAULT_STRENGTH,
    HttpInsightGenerator,
    InsightGenerator,
    build_report,
    format_watch_time,
    placeholder_insights,
    resolve_insights,
)
from learnpulse.analytics.schemas import Insights, PerformanceMetrics

NOW = datetime(2026, 3, 4, 10, 0, 0, tzinfo=timezone.utc)


def _metrics(engagement: int, completion: int, **extra) -> PerformanceMetrics:
    return PerformanceMetrics(engagement_score=engagement, completion_rate=completion, calculated_at=NOW, **extra)


class _Broken(InsightGenerator):
    async def generate_insights(self, metrics):
        raise RuntimeError("insight service down")


class _Canned(InsightGenerator):
    async def generate_insights(self, metrics):
        return Insights(
            strengths=["s"], improvements=["i"], recommendations=["r"], learning_pattern="p", model="canned"
        )


class TestPlaceholderInsights:
    def test_high_scores(self):
        insights = placeholder_insights(_metrics(85, 95))
        assert insights.strengths == [
            "Excellent engagement with course materials",
            "Consistent learning habits",
            "Strong course completion rate",
        ]
        assert insights.improvements == [DEFAULT_IMPROVEMENT]
        assert insights.model == "placeholder"
        assert len(insights.recommendations) == 4

    def test_low_scores(self):
        insights = placeholder_insights(_metrics(50, 50))
        assert insights.strengths == [DEFAULT_STRENGTH]
        assert insights.improvements == [
            "Increase interaction with video controls and features",
            "Complete all lesson materials for better understanding",
        ]

    def test_middle_band_gets_both(self):
        insights = placeholder_insights(_metrics(75, 80))
        assert len(insights.strengths) == 3
        assert len(insights.improvements) == 2

    def test_boundaries_are_strict(self):
        insights = placeholder_insights(_metrics(70, 75))
        assert insights.strengths == [DEFAULT_STRENGTH]


class TestResolveInsights:
    @pytest.mark.asyncio
    async def test_no_generator_uses_placeholder(self):
        insights = await resolve_insights(_metrics(85, 95), None)
        assert insights.model == "placeholder"

    @pytest.mark.asyncio
    async def test_failing_generator_falls_back(self):
        insights = await resolve_insights(_metrics(85, 95), _Broken())
        assert insights.model == "placeholder"

    @pytest.mark.asyncio
    async def test_working_generator_is_used(self):
        insights = await resolve_insights(_metrics(85, 95), _Canned())
        assert insights.model == "canned"


class TestHttpInsightGenerator:
    @pytest.mark.asyncio
    async def test_posts_metrics_and_parses_reply(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = request.read()
            return httpx.Response(
                200,
                json={
                    "strengths": ["Steady pace"],
                    "improvements": ["Take more quizzes"],
                    "recommendations": ["Review week 2"],
                    "learning_pattern": "Evening learner",
                    "model": "insight-v1",
                },
            )

        generator = HttpInsightGenerator("http://insights.test/generate", transport=httpx.MockTransport(handler))
        insights = await generator.generate_insights(_metrics(60, 40))

        assert seen["url"] == "http://insights.test/generate"
        assert b'"engagement_score":60' in seen["body"]
        assert insights.learning_pattern == "Evening learner"
        assert insights.model == "insight-v1"

    @pytest.mark.asyncio
    async def test_http_error_falls_back_to_placeholder(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        generator = HttpInsightGenerator("http://insights.test/generate", transport=transport)
        insights = await resolve_insights(_metrics(60, 40), generator)
        assert insights.model == "placeholder"


class TestBuildReport:
    def test_summary_formatting(self):
        metrics = _metrics(85, 72, total_sessions=6, total_watch_time_minutes=135)
        report = build_report(metrics, placeholder_insights(metrics), NOW)
        assert report.summary.total_sessions == 6
        assert report.summary.average_engagement == "85%"
        assert report.summary.average_completion == "72%"
        assert report.summary.total_watch_time == "2h 15m"
        assert report.generated_at == NOW

    @pytest.mark.parametrize(("minutes", "text"), [(0, "0h 0m"), (59, "0h 59m"), (60, "1h 0m"), (605, "10h 5m")])
    def test_format_watch_time(self, minutes, text):
        assert format_watch_time(minutes) == text
