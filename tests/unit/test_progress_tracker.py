"""Progress tracker transitions: completion, percentage, notes, bookmarks."""

from datetime import datetime, timedelta, timezone

import pytest

from learnpulse.progress import tracker
from learnpulse.progress.schemas import ProgressSnapshot

NOW = datetime(2026, 3, 4, 10, 0, 0, tzinfo=timezone.utc)


def _snapshot(**overrides) -> ProgressSnapshot:
    fields = {
        "id": "p1",
        "learner_id": "learner-1",
        "course_id": "course-1",
        "started_at": NOW,
        "last_accessed_at": NOW,
        "version": 1,
    }
    fields.update(overrides)
    return ProgressSnapshot(**fields)


class TestCompleteLesson:
    def test_first_completion_records_lesson(self):
        s = tracker.complete_lesson(_snapshot(), "l1", "s1", watch_time_seconds=300, quiz_score=80, now=NOW)
        assert len(s.completed_lessons) == 1
        lesson = s.completed_lessons[0]
        assert lesson.lesson_id == "l1"
        assert lesson.section_id == "s1"
        assert lesson.quiz_score == 80
        assert lesson.quiz_attempts == 1
        assert lesson.completed_at == NOW
        assert s.total_watch_time_seconds == 300
        assert s.last_accessed_at == NOW

    def test_completion_without_quiz_has_no_attempts(self):
        s = tracker.complete_lesson(_snapshot(), "l1", "s1", now=NOW)
        assert s.completed_lessons[0].quiz_score is None
        assert s.completed_lessons[0].quiz_attempts == 0

    def test_repeat_completion_keeps_single_record(self):
        s = tracker.complete_lesson(_snapshot(), "l1", "s1", watch_time_seconds=60, now=NOW)
        s = tracker.complete_lesson(s, "l1", "s1", watch_time_seconds=60, now=NOW)
        assert len(s.completed_lessons) == 1
        assert s.total_watch_time_seconds == 120

    def test_better_quiz_score_replaces_and_counts_attempt(self):
        s = tracker.complete_lesson(_snapshot(), "l1", "s1", quiz_score=60, now=NOW)
        s = tracker.complete_lesson(s, "l1", "s1", quiz_score=85, now=NOW)
        assert s.completed_lessons[0].quiz_score == 85
        assert s.completed_lessons[0].quiz_attempts == 2

    def test_worse_quiz_score_is_ignored(self):
        s = tracker.complete_lesson(_snapshot(), "l1", "s1", quiz_score=90, now=NOW)
        s = tracker.complete_lesson(s, "l1", "s1", quiz_score=50, now=NOW)
        assert s.completed_lessons[0].quiz_score == 90
        assert s.completed_lessons[0].quiz_attempts == 1

    def test_input_snapshot_is_untouched(self):
        before = _snapshot()
        tracker.complete_lesson(before, "l1", "s1", watch_time_seconds=60, now=NOW)
        assert before.completed_lessons == ()
        assert before.total_watch_time_seconds == 0


class TestCalculateProgress:
    def _with_lessons(self, count: int) -> ProgressSnapshot:
        s = _snapshot()
        for i in range(count):
            s = tracker.complete_lesson(s, f"l{i}", "s1", now=NOW)
        return s

    @pytest.mark.parametrize(
        ("completed", "total", "expected"),
        [(1, 3, 33), (2, 3, 67), (1, 8, 13), (4, 4, 100), (0, 5, 0)],
    )
    def test_percentage_rounds_half_up(self, completed, total, expected):
        s = tracker.calculate_progress(self._with_lessons(completed), total, now=NOW)
        assert s.overall_progress == expected

    def test_unknown_course_gives_zero(self):
        s = tracker.calculate_progress(self._with_lessons(2), 0, now=NOW)
        assert s.overall_progress == 0

    def test_more_completions_than_lessons_caps_at_100(self):
        s = tracker.calculate_progress(self._with_lessons(5), 4, now=NOW)
        assert s.overall_progress == 100

    def test_progress_never_decreases(self):
        s = tracker.calculate_progress(self._with_lessons(2), 4, now=NOW)
        assert s.overall_progress == 50
        s = tracker.calculate_progress(s, 10, now=NOW)
        assert s.overall_progress == 50

    def test_completed_at_set_once(self):
        s = tracker.calculate_progress(self._with_lessons(2), 2, now=NOW)
        assert s.completed_at == NOW
        later = NOW + timedelta(days=3)
        s = tracker.calculate_progress(s, 2, now=later)
        assert s.completed_at == NOW

    def test_incomplete_course_has_no_completed_at(self):
        s = tracker.calculate_progress(self._with_lessons(1), 2, now=NOW)
        assert s.completed_at is None


class TestPosition:
    def test_position_overwrites_cursor(self):
        s = tracker.update_current_lesson(_snapshot(), "l1", "s1", 42.5, now=NOW)
        s = tracker.update_current_lesson(s, "l2", "s1", 10, now=NOW + timedelta(minutes=1))
        assert s.current_lesson.lesson_id == "l2"
        assert s.current_lesson.position_seconds == 10
        assert s.last_accessed_at == NOW + timedelta(minutes=1)


class TestNotesAndBookmarks:
    def test_notes_for_lesson_sorted_by_timestamp(self):
        s = _snapshot()
        s, _ = tracker.add_note(s, "l1", "later", 120, now=NOW)
        s, _ = tracker.add_note(s, "l2", "other lesson", 5, now=NOW)
        s, _ = tracker.add_note(s, "l1", "earlier", 30, ai_generated=True, now=NOW)
        notes = tracker.notes_for_lesson(s, "l1")
        assert [n.content for n in notes] == ["earlier", "later"]
        assert notes[0].ai_generated is True

    def test_note_ids_are_unique(self):
        s, first = tracker.add_note(_snapshot(), "l1", "a", 1, now=NOW)
        s, second = tracker.add_note(s, "l1", "b", 2, now=NOW)
        assert first.id != second.id

    def test_delete_note(self):
        s, note = tracker.add_note(_snapshot(), "l1", "a", 1, now=NOW)
        s = tracker.delete_note(s, note.id)
        assert s.notes == ()

    def test_delete_unknown_note_is_noop(self):
        s, _ = tracker.add_note(_snapshot(), "l1", "a", 1, now=NOW)
        assert tracker.delete_note(s, "missing").notes == s.notes

    def test_bookmarks_newest_first(self):
        s = _snapshot()
        s, _ = tracker.add_bookmark(s, "l1", "old", 10, now=NOW)
        s, _ = tracker.add_bookmark(s, "l1", "new", 20, now=NOW + timedelta(hours=1))
        assert [b.title for b in tracker.bookmarks_newest_first(s)] == ["new", "old"]

    def test_delete_bookmark(self):
        s, bookmark = tracker.add_bookmark(_snapshot(), "l1", "b", 10, now=NOW)
        assert tracker.delete_bookmark(s, bookmark.id).bookmarks == ()
