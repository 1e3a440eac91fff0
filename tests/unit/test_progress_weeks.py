"""Weekly buckets (Sunday-start weeks) and study goals."""

from datetime import date, datetime, timezone

from learnpulse.progress import tracker
from learnpulse.progress.schemas import ProgressSnapshot, StudyGoal, WeeklyStat

WED = datetime(2026, 3, 4, 10, 0, 0, tzinfo=timezone.utc)


def _snapshot(**overrides) -> ProgressSnapshot:
    fields = {"learner_id": "learner-1", "course_id": "course-1", "started_at": WED, "last_accessed_at": WED}
    fields.update(overrides)
    return ProgressSnapshot(**fields)


class TestGetWeekStart:
    def test_sunday_returns_itself(self):
        assert tracker.get_week_start(datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)) == date(2026, 3, 1)

    def test_saturday_returns_previous_sunday(self):
        assert tracker.get_week_start(datetime(2026, 3, 7, 23, 59, 59, tzinfo=timezone.utc)) == date(2026, 3, 1)

    def test_wednesday_returns_sunday(self):
        assert tracker.get_week_start(WED) == date(2026, 3, 1)

    def test_accepts_plain_date(self):
        assert tracker.get_week_start(date(2026, 3, 2)) == date(2026, 3, 1)

    def test_year_boundary(self):
        # Thursday 2026-01-01 belongs to the week starting Sunday 2025-12-28
        assert tracker.get_week_start(date(2026, 1, 1)) == date(2025, 12, 28)


class TestUpdateWeeklyStats:
    def test_creates_bucket_for_current_week(self):
        s = tracker.update_weekly_stats(_snapshot(), 20, 1, now=WED)
        assert s.weekly_stats == (
            WeeklyStat(week_start=date(2026, 3, 1), minutes_studied=20, lessons_completed=1, goal_achieved=False),
        )

    def test_accumulates_within_week(self):
        s = tracker.update_weekly_stats(_snapshot(), 20, 1, now=WED)
        s = tracker.update_weekly_stats(s, 15, 1, now=datetime(2026, 3, 7, 22, 0, tzinfo=timezone.utc))
        assert len(s.weekly_stats) == 1
        assert s.weekly_stats[0].minutes_studied == 35
        assert s.weekly_stats[0].lessons_completed == 2

    def test_new_week_gets_new_bucket(self):
        s = tracker.update_weekly_stats(_snapshot(), 20, 1, now=WED)
        s = tracker.update_weekly_stats(s, 10, 1, now=datetime(2026, 3, 8, 0, 0, tzinfo=timezone.utc))
        assert [w.week_start for w in s.weekly_stats] == [date(2026, 3, 1), date(2026, 3, 8)]

    def test_goal_achieved_when_minutes_reach_weekly_goal(self):
        s = _snapshot(study_goal=StudyGoal(daily_minutes=10, weekly_minutes=60))
        s = tracker.update_weekly_stats(s, 59, 1, now=WED)
        assert s.weekly_stats[0].goal_achieved is False
        s = tracker.update_weekly_stats(s, 1, 0, now=WED)
        assert s.weekly_stats[0].goal_achieved is True

    def test_weekly_stats_for_missing_week_is_empty(self):
        stat = tracker.weekly_stats_for(_snapshot(), date(2026, 3, 1))
        assert stat == WeeklyStat(week_start=date(2026, 3, 1))


class TestSetStudyGoal:
    def test_lowering_goal_marks_existing_weeks_achieved(self):
        s = tracker.update_weekly_stats(_snapshot(), 100, 2, now=WED)
        assert s.weekly_stats[0].goal_achieved is False
        s = tracker.set_study_goal(s, 15, 90)
        assert s.study_goal == StudyGoal(daily_minutes=15, weekly_minutes=90)
        assert s.weekly_stats[0].goal_achieved is True

    def test_raising_goal_clears_achievement(self):
        s = tracker.update_weekly_stats(_snapshot(), 300, 2, now=WED)
        assert s.weekly_stats[0].goal_achieved is True
        s = tracker.set_study_goal(s, 60, 400)
        assert s.weekly_stats[0].goal_achieved is False
