"""Pydantic models for analytics sessions, metrics and reports."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from learnpulse.analytics.interactions import InteractionData, InteractionKind

NO_DATA = "No data"


# --- Session records (read side, immutable) ---


class InteractionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: str
    kind: InteractionKind
    occurred_at: datetime
    video_timestamp_seconds: float | None = None
    data: InteractionData


class SessionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    learner_id: str
    course_id: str
    lesson_id: str
    start_time: datetime
    end_time: datetime | None = None
    duration_seconds: int | None = None
    video_progress_percent: float = 0.0
    created_at: datetime
    interactions: tuple[InteractionRecord, ...] = ()


# --- Tracking requests ---


class SessionUpdate(BaseModel):
    """Session-level changes sent alongside (or instead of) an interaction.

    Any truthy end_time closes the session at server time.
    """

    model_config = ConfigDict(populate_by_name=True)

    end_time: datetime | bool | None = Field(default=None, validation_alias=AliasChoices("end_time", "endTime"))
    video_progress: float | None = Field(
        default=None, validation_alias=AliasChoices("video_progress", "videoProgress")
    )


class TrackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: str = Field(min_length=1, max_length=64, validation_alias=AliasChoices("course_id", "courseId"))
    lesson_id: str = Field(min_length=1, max_length=64, validation_alias=AliasChoices("lesson_id", "lessonId"))
    action: str | None = Field(default=None, max_length=64)
    data: dict[str, Any] | None = None
    session_data: SessionUpdate | None = Field(
        default=None, validation_alias=AliasChoices("session_data", "sessionData")
    )


class TrackResponse(BaseModel):
    session_id: str


# --- Metrics ---


class LearningPatterns(BaseModel):
    preferred_time: str = NO_DATA
    session_length: str = NO_DATA
    interaction_style: str = NO_DATA
    consistency: str = NO_DATA


class TopicStats(BaseModel):
    topic: str
    sessions: int
    average_time_minutes: int
    average_engagement: int


class TopicPerformance(BaseModel):
    topics: list[TopicStats] = []
    strongest_topic: TopicStats | None = None
    needs_improvement: TopicStats | None = None


class QuizPerformance(BaseModel):
    total_quizzes: int = 0
    average_score: int = 0
    scores: list[float] = []


class PerformanceMetrics(BaseModel):
    engagement_score: int = 0
    completion_rate: int = 0
    average_watch_time_minutes: int = 0
    total_watch_time_minutes: int = 0
    quiz_performance: QuizPerformance = QuizPerformance()
    learning_patterns: LearningPatterns = LearningPatterns()
    topic_performance: TopicPerformance = TopicPerformance()
    total_sessions: int = 0
    timeframe: str = "7d"
    calculated_at: datetime | None = None


class CourseInsights(BaseModel):
    total_learners: int = 0
    average_completion: int = 0
    total_sessions: int = 0
    most_popular_lesson: str | None = None


# --- Reports ---


class Insights(BaseModel):
    strengths: list[str]
    improvements: list[str]
    recommendations: list[str]
    learning_pattern: str
    model: str = "external"


class ReportSummary(BaseModel):
    total_sessions: int
    average_engagement: str
    average_completion: str
    total_watch_time: str


class PerformanceReport(BaseModel):
    metrics: PerformanceMetrics
    insights: Insights
    summary: ReportSummary
    generated_at: datetime


class ReportJobResponse(BaseModel):
    job_id: str
    status: str
    report: PerformanceReport | None = None
    error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
