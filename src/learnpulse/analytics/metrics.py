"""Performance metrics derived from analytics sessions.

Pure functions over SessionRecord lists; no I/O. All averages round half up.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timedelta

from learnpulse.analytics.interactions import InteractionKind, QuizCompletedData
from learnpulse.analytics.schemas import (
    NO_DATA,
    CourseInsights,
    LearningPatterns,
    PerformanceMetrics,
    QuizPerformance,
    SessionRecord,
    TopicPerformance,
    TopicStats,
)
from learnpulse.rounding import clamp, round_half_up

# Engagement points per interaction kind
INTERACTION_WEIGHTS: dict[InteractionKind, int] = {
    InteractionKind.PLAY: 10,
    InteractionKind.PAUSE: 5,
    InteractionKind.SEEK: 3,
    InteractionKind.NOTE: 15,
    InteractionKind.QUIZ_COMPLETED: 20,
    InteractionKind.FULLSCREEN_TOGGLE: 5,
    InteractionKind.OTHER: 2,
}

DEFAULT_COMPLETION_THRESHOLD = 90

TIMEFRAME_DAYS: dict[str, int] = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_TIMEFRAME = "7d"


def normalize_timeframe(timeframe: str | None) -> str:
    """Known timeframe key, falling back to 7d."""
    if timeframe in TIMEFRAME_DAYS:
        return timeframe
    return DEFAULT_TIMEFRAME


def timeframe_start(timeframe: str | None, now: datetime) -> datetime:
    return now - timedelta(days=TIMEFRAME_DAYS[normalize_timeframe(timeframe)])


# ---------------------------------------------------------------------------
# Per-session
# ---------------------------------------------------------------------------


def session_points(session: SessionRecord) -> int:
    return sum(INTERACTION_WEIGHTS[i.kind] for i in session.interactions)


def session_engagement(session: SessionRecord) -> float:
    """Interaction points per minute, x10, bounded to 0..100.

    Sessions without a duration (still open, or closed instantly) score their
    raw points.
    """
    points = session_points(session)
    duration = session.duration_seconds or 0
    if duration > 0:
        return clamp(points / (duration / 60) * 10)
    return clamp(points)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def engagement_score(sessions: Sequence[SessionRecord]) -> int:
    if not sessions:
        return 0
    return round_half_up(sum(session_engagement(s) for s in sessions) / len(sessions))


def completion_rate(sessions: Sequence[SessionRecord], threshold: float = DEFAULT_COMPLETION_THRESHOLD) -> int:
    """Percentage of sessions that reached `threshold` percent of the video."""
    if not sessions:
        return 0
    completed = sum(1 for s in sessions if s.video_progress_percent >= threshold)
    return round_half_up(completed / len(sessions) * 100)


def _total_seconds(sessions: Sequence[SessionRecord]) -> int:
    return sum(s.duration_seconds or 0 for s in sessions)


def average_watch_time_minutes(sessions: Sequence[SessionRecord]) -> int:
    if not sessions:
        return 0
    return round_half_up(_total_seconds(sessions) / len(sessions) / 60)


def total_watch_time_minutes(sessions: Sequence[SessionRecord]) -> int:
    return round_half_up(_total_seconds(sessions) / 60)


# ---------------------------------------------------------------------------
# Learning patterns
# ---------------------------------------------------------------------------


def preferred_study_time(sessions: Sequence[SessionRecord]) -> str:
    """Six-hour band containing the most common session start hour (UTC).

    Ties go to the earliest hour.
    """
    if not sessions:
        return NO_DATA
    hour_counts = [0] * 24
    for s in sessions:
        hour_counts[s.created_at.hour] += 1
    hour = hour_counts.index(max(hour_counts))

    if hour < 6:
        return "Early Morning (12 AM - 6 AM)"
    if hour < 12:
        return "Morning (6 AM - 12 PM)"
    if hour < 18:
        return "Afternoon (12 PM - 6 PM)"
    return "Evening (6 PM - 12 AM)"


def session_length(sessions: Sequence[SessionRecord]) -> str:
    if not sessions:
        return NO_DATA
    minutes = average_watch_time_minutes(sessions)
    if minutes < 15:
        return "Short (< 15 min)"
    if minutes < 30:
        return "Medium (15-30 min)"
    if minutes < 60:
        return "Long (30-60 min)"
    return "Extended (> 60 min)"


def interaction_style(sessions: Sequence[SessionRecord]) -> str:
    if not sessions:
        return NO_DATA
    kinds = Counter(i.kind for s in sessions for i in s.interactions)
    total = sum(kinds.values())

    if kinds[InteractionKind.NOTE] > total * 0.3:
        return "Note-taker"
    if kinds[InteractionKind.SEEK] > total * 0.3:
        return "Explorer"
    if total / len(sessions) > 10:
        return "Active"
    return "Passive"


def study_consistency(sessions: Sequence[SessionRecord]) -> str:
    """Share of days in the active span with at least one session."""
    if not sessions:
        return NO_DATA
    if len(sessions) < 2:
        return "New learner"

    created = sorted(s.created_at for s in sessions)
    active_days = len({dt.date() for dt in created})
    day_span = math.ceil((created[-1] - created[0]).total_seconds() / 86400)
    ratio = active_days / max(day_span, 1)

    if ratio > 0.8:
        return "Very consistent"
    if ratio > 0.5:
        return "Consistent"
    if ratio > 0.3:
        return "Somewhat consistent"
    return "Irregular"


def learning_patterns(sessions: Sequence[SessionRecord]) -> LearningPatterns:
    return LearningPatterns(
        preferred_time=preferred_study_time(sessions),
        session_length=session_length(sessions),
        interaction_style=interaction_style(sessions),
        consistency=study_consistency(sessions),
    )


# ---------------------------------------------------------------------------
# Topics and quizzes
# ---------------------------------------------------------------------------


def topic_performance(sessions: Sequence[SessionRecord]) -> TopicPerformance:
    """Per-lesson aggregates plus the best and worst lesson by engagement.

    Topics keep first-seen order; the first topic wins ties.
    """
    grouped: dict[str, list[SessionRecord]] = {}
    for s in sessions:
        grouped.setdefault(s.lesson_id, []).append(s)

    topics = [
        TopicStats(
            topic=lesson_id,
            sessions=len(group),
            average_time_minutes=round_half_up(_total_seconds(group) / len(group) / 60),
            average_engagement=round_half_up(sum(session_engagement(s) for s in group) / len(group)),
        )
        for lesson_id, group in grouped.items()
    ]
    if not topics:
        return TopicPerformance()

    return TopicPerformance(
        topics=topics,
        strongest_topic=max(topics, key=lambda t: t.average_engagement),
        needs_improvement=min(topics, key=lambda t: t.average_engagement),
    )


def quiz_performance(sessions: Sequence[SessionRecord]) -> QuizPerformance:
    """Scores carried by quiz_completed interactions, in session order."""
    scores = [
        i.data.score
        for s in sessions
        for i in s.interactions
        if isinstance(i.data, QuizCompletedData) and i.data.score is not None
    ]
    if not scores:
        return QuizPerformance()
    return QuizPerformance(
        total_quizzes=len(scores),
        average_score=round_half_up(sum(scores) / len(scores)),
        scores=scores,
    )


def calculate_metrics(
    sessions: Sequence[SessionRecord],
    timeframe: str,
    now: datetime,
    completion_threshold: float = DEFAULT_COMPLETION_THRESHOLD,
) -> PerformanceMetrics:
    """Full metrics bundle for a set of sessions."""
    timeframe = normalize_timeframe(timeframe)
    if not sessions:
        return PerformanceMetrics(timeframe=timeframe, calculated_at=now)

    return PerformanceMetrics(
        engagement_score=engagement_score(sessions),
        completion_rate=completion_rate(sessions, completion_threshold),
        average_watch_time_minutes=average_watch_time_minutes(sessions),
        total_watch_time_minutes=total_watch_time_minutes(sessions),
        quiz_performance=quiz_performance(sessions),
        learning_patterns=learning_patterns(sessions),
        topic_performance=topic_performance(sessions),
        total_sessions=len(sessions),
        timeframe=timeframe,
        calculated_at=now,
    )


def course_insights(sessions: Sequence[SessionRecord]) -> CourseInsights:
    """Instructor view over every learner's sessions in one course.

    The most popular lesson is the one with the most sessions; the first seen
    wins ties.
    """
    if not sessions:
        return CourseInsights()
    lesson_counts = Counter(s.lesson_id for s in sessions)
    return CourseInsights(
        total_learners=len({s.learner_id for s in sessions}),
        average_completion=round_half_up(sum(s.video_progress_percent for s in sessions) / len(sessions)),
        total_sessions=len(sessions),
        most_popular_lesson=lesson_counts.most_common(1)[0][0],
    )
