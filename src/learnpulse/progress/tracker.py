"""Progress state transitions: completion, percentage, streaks, weekly buckets.

Every function takes a ProgressSnapshot and returns a new one. Nothing here
touches the database; persistence is ProgressRepository's job.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from learnpulse.clock import ensure_utc, utc_now
from learnpulse.progress.schemas import (
    Bookmark,
    CompletedLesson,
    CurrentLesson,
    Note,
    ProgressSnapshot,
    StudyGoal,
    WeeklyStat,
)
from learnpulse.rounding import round_half_up


def get_today(now: datetime | None = None) -> date:
    """UTC calendar date of now, time-of-day stripped."""
    if now is None:
        now = utc_now()
    return ensure_utc(now).date()


def get_week_start(dt: datetime | date) -> date:
    """Get the Sunday starting the week containing dt."""
    d = ensure_utc(dt).date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=(d.weekday() + 1) % 7)


def find_completion(snapshot: ProgressSnapshot, lesson_id: str) -> CompletedLesson | None:
    """Return the completion record for lesson_id, if any."""
    for completion in snapshot.completed_lessons:
        if completion.lesson_id == lesson_id:
            return completion
    return None


# --- Completion ---


def complete_lesson(
    snapshot: ProgressSnapshot,
    lesson_id: str,
    section_id: str,
    watch_time_seconds: int = 0,
    quiz_score: float | None = None,
    now: datetime | None = None,
) -> ProgressSnapshot:
    """Record a lesson completion.

    A lesson is stored once. Completing it again only matters when it brings
    a better quiz score, which replaces the stored one and counts an attempt.
    Watch time always accumulates and the streak is always updated.
    """
    if now is None:
        now = utc_now()

    lessons = snapshot.completed_lessons
    existing = find_completion(snapshot, lesson_id)
    if existing is None:
        lessons = (
            *lessons,
            CompletedLesson(
                lesson_id=lesson_id,
                section_id=section_id,
                completed_at=now,
                watch_time_seconds=watch_time_seconds,
                quiz_score=quiz_score,
                quiz_attempts=1 if quiz_score is not None else 0,
            ),
        )
    elif quiz_score is not None and quiz_score > (existing.quiz_score or 0):
        improved = existing.model_copy(
            update={"quiz_score": quiz_score, "quiz_attempts": existing.quiz_attempts + 1}
        )
        lessons = tuple(improved if c.lesson_id == lesson_id else c for c in lessons)

    updated = snapshot.model_copy(
        update={
            "completed_lessons": lessons,
            "total_watch_time_seconds": snapshot.total_watch_time_seconds + watch_time_seconds,
            "last_accessed_at": now,
        }
    )
    return update_streak(updated, now)


def calculate_progress(
    snapshot: ProgressSnapshot,
    total_lessons: int,
    now: datetime | None = None,
) -> ProgressSnapshot:
    """Derive overall_progress from the completed set.

    Stored progress never goes down, so a catalog that later grows its
    lesson count does not take progress away. completed_at is set the first
    time progress reaches 100 and is never cleared.
    """
    if total_lessons <= 0:
        computed = 0
    else:
        computed = min(100, round_half_up(100 * len(snapshot.completed_lessons) / total_lessons))

    progress = max(snapshot.overall_progress, computed)
    update: dict[str, object] = {"overall_progress": progress}
    if progress >= 100 and snapshot.completed_at is None:
        update["completed_at"] = now if now is not None else utc_now()
    return snapshot.model_copy(update=update)


def update_current_lesson(
    snapshot: ProgressSnapshot,
    lesson_id: str,
    section_id: str,
    position_seconds: float = 0,
    now: datetime | None = None,
) -> ProgressSnapshot:
    """Overwrite the playback cursor."""
    if now is None:
        now = utc_now()
    return snapshot.model_copy(
        update={
            "current_lesson": CurrentLesson(
                lesson_id=lesson_id,
                section_id=section_id,
                position_seconds=position_seconds,
            ),
            "last_accessed_at": now,
        }
    )


# --- Streak ---


def update_streak(snapshot: ProgressSnapshot, now: datetime | None = None) -> ProgressSnapshot:
    """Advance, reset or keep the daily streak.

    Consecutive day: +1. Gap of two or more days: restart at 1. Same day: no
    change. A last_streak_date in the future (clock skew) is also left alone
    rather than treated as a break.
    """
    today = get_today(now)

    if snapshot.last_streak_date is None:
        return snapshot.model_copy(update={"streak_days": 1, "last_streak_date": today})

    days_diff = (today - snapshot.last_streak_date).days
    if days_diff == 1:
        return snapshot.model_copy(
            update={"streak_days": snapshot.streak_days + 1, "last_streak_date": today}
        )
    if days_diff > 1:
        return snapshot.model_copy(update={"streak_days": 1, "last_streak_date": today})
    return snapshot


# --- Weekly buckets ---


def weekly_stats_for(snapshot: ProgressSnapshot, week_start: date) -> WeeklyStat:
    """Return the bucket for week_start, or an empty one."""
    for stat in snapshot.weekly_stats:
        if stat.week_start == week_start:
            return stat
    return WeeklyStat(week_start=week_start)


def update_weekly_stats(
    snapshot: ProgressSnapshot,
    minutes_studied: int,
    lessons_completed: int,
    now: datetime | None = None,
) -> ProgressSnapshot:
    """Add study time to the bucket of the week containing now.

    The bucket is chosen from the time of this call, not from when the
    lesson was completed.
    """
    week_start = get_week_start(now if now is not None else utc_now())
    current = weekly_stats_for(snapshot, week_start)
    minutes = current.minutes_studied + minutes_studied
    bucket = current.model_copy(
        update={
            "minutes_studied": minutes,
            "lessons_completed": current.lessons_completed + lessons_completed,
            "goal_achieved": minutes >= snapshot.study_goal.weekly_minutes,
        }
    )

    if any(stat.week_start == week_start for stat in snapshot.weekly_stats):
        stats = tuple(bucket if stat.week_start == week_start else stat for stat in snapshot.weekly_stats)
    else:
        stats = (*snapshot.weekly_stats, bucket)
    return snapshot.model_copy(update={"weekly_stats": stats})


def set_study_goal(snapshot: ProgressSnapshot, daily_minutes: int, weekly_minutes: int) -> ProgressSnapshot:
    """Replace the study goal and re-evaluate goal_achieved on every bucket."""
    goal = StudyGoal(daily_minutes=daily_minutes, weekly_minutes=weekly_minutes)
    stats = tuple(
        stat.model_copy(update={"goal_achieved": stat.minutes_studied >= weekly_minutes})
        for stat in snapshot.weekly_stats
    )
    return snapshot.model_copy(update={"study_goal": goal, "weekly_stats": stats})


# --- Notes and bookmarks ---


def add_note(
    snapshot: ProgressSnapshot,
    lesson_id: str,
    content: str,
    timestamp_seconds: float,
    ai_generated: bool = False,
    now: datetime | None = None,
) -> tuple[ProgressSnapshot, Note]:
    """Append a note. Returns the new snapshot and the created note."""
    note = Note(
        lesson_id=lesson_id,
        content=content,
        timestamp_seconds=timestamp_seconds,
        created_at=now if now is not None else utc_now(),
        ai_generated=ai_generated,
    )
    return snapshot.model_copy(update={"notes": (*snapshot.notes, note)}), note


def add_bookmark(
    snapshot: ProgressSnapshot,
    lesson_id: str,
    title: str,
    timestamp_seconds: float,
    now: datetime | None = None,
) -> tuple[ProgressSnapshot, Bookmark]:
    """Append a bookmark. Returns the new snapshot and the created bookmark."""
    bookmark = Bookmark(
        lesson_id=lesson_id,
        title=title,
        timestamp_seconds=timestamp_seconds,
        created_at=now if now is not None else utc_now(),
    )
    return snapshot.model_copy(update={"bookmarks": (*snapshot.bookmarks, bookmark)}), bookmark


def delete_note(snapshot: ProgressSnapshot, note_id: str) -> ProgressSnapshot:
    return snapshot.model_copy(update={"notes": tuple(n for n in snapshot.notes if n.id != note_id)})


def delete_bookmark(snapshot: ProgressSnapshot, bookmark_id: str) -> ProgressSnapshot:
    return snapshot.model_copy(
        update={"bookmarks": tuple(b for b in snapshot.bookmarks if b.id != bookmark_id)}
    )


def notes_for_lesson(snapshot: ProgressSnapshot, lesson_id: str) -> list[Note]:
    """Notes of one lesson in video-timestamp order."""
    return sorted(
        (n for n in snapshot.notes if n.lesson_id == lesson_id),
        key=lambda n: n.timestamp_seconds,
    )


def bookmarks_newest_first(snapshot: ProgressSnapshot) -> list[Bookmark]:
    return sorted(snapshot.bookmarks, key=lambda b: b.created_at, reverse=True)
