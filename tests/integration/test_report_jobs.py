"""Integration tests for detached performance-report jobs."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from learnpulse.analytics import reports, sessions
from learnpulse.analytics.schemas import SessionUpdate
from learnpulse.analytics.service import AnalyticsService
from learnpulse.database import get_session_factory
from learnpulse.db.models import ReportJob
from learnpulse.errors import ReportJobNotFoundError
from learnpulse.workers.session_reaper import reap_once


def _locked() -> OperationalError:
    return OperationalError("UPDATE report_jobs", {}, Exception("database is locked"))


async def _watch_lesson(db, clock, lesson_id="l1"):
    await sessions.track(db, "learner-1", "c1", lesson_id, clock(), action="play")
    clock.advance(minutes=10)
    await sessions.track(
        db,
        "learner-1",
        "c1",
        lesson_id,
        clock(),
        action="pause",
        session_update=SessionUpdate(video_progress=95, end_time=True),
    )


class TestReportJobs:
    @pytest.mark.asyncio
    async def test_job_completes_with_report(self, db_session, clock):
        await _watch_lesson(db_session, clock)

        started = await reports.start_report_job(db_session, "learner-1", clock=clock)
        assert started.status == reports.PROCESSING
        assert started.report is None

        await reports.drain_report_tasks(timeout=5.0)
        job = await reports.get_report_job(db_session, started.job_id, "learner-1")

        assert job.status == reports.COMPLETED
        assert job.error is None
        assert job.completed_at == clock()
        assert job.report is not None
        assert job.report.summary.total_sessions == 1
        assert job.report.summary.total_watch_time == "0h 10m"
        assert job.report.metrics.completion_rate == 100
        assert job.report.metrics.timeframe == "30d"
        assert job.report.insights.model == "placeholder"

    @pytest.mark.asyncio
    async def test_failure_is_recorded(self, db_session, clock, monkeypatch):
        async def broken_report(self, learner_id, course_id=None, timeframe="7d"):
            raise RuntimeError("metrics store offline")

        monkeypatch.setattr(AnalyticsService, "get_performance_report", broken_report)

        started = await reports.start_report_job(db_session, "learner-1", clock=clock)
        await reports.drain_report_tasks(timeout=5.0)
        job = await reports.get_report_job(db_session, started.job_id, "learner-1")

        assert job.status == reports.FAILED
        assert job.error == "metrics store offline"
        assert job.report is None

    @pytest.mark.asyncio
    async def test_terminal_state_is_final(self, db_session, clock):
        started = await reports.start_report_job(db_session, "learner-1", clock=clock)
        await reports.drain_report_tasks(timeout=5.0)

        changed = await reports._finish_job(started.job_id, clock(), status=reports.FAILED, error="late")
        assert changed is False

        job = await reports.get_report_job(db_session, started.job_id, "learner-1")
        assert job.status == reports.COMPLETED

    @pytest.mark.asyncio
    async def test_jobs_are_private_to_their_learner(self, db_session, clock):
        started = await reports.start_report_job(db_session, "learner-1", clock=clock)
        await reports.drain_report_tasks(timeout=5.0)

        with pytest.raises(ReportJobNotFoundError):
            await reports.get_report_job(db_session, started.job_id, "learner-2")
        with pytest.raises(ReportJobNotFoundError):
            await reports.get_report_job(db_session, "no-such-job", "learner-1")

    @pytest.mark.asyncio
    async def test_unknown_timeframe_is_normalized(self, db_session, clock):
        started = await reports.start_report_job(db_session, "learner-1", timeframe="1y", clock=clock)
        await reports.drain_report_tasks(timeout=5.0)
        job = await reports.get_report_job(db_session, started.job_id, "learner-1")
        assert job.report.metrics.timeframe == "7d"

    @pytest.mark.asyncio
    async def test_failed_write_is_retried(self, db_session, clock, monkeypatch):
        real_finish = reports._finish_job
        calls = []

        async def flaky_finish(job_id, now, **values):
            calls.append(values["status"])
            if len(calls) <= 2:
                raise _locked()
            return await real_finish(job_id, now, **values)

        monkeypatch.setattr(reports, "_finish_job", flaky_finish)

        started = await reports.start_report_job(db_session, "learner-1", clock=clock)
        await reports.drain_report_tasks(timeout=5.0)
        job = await reports.get_report_job(db_session, started.job_id, "learner-1")

        assert calls == [reports.COMPLETED, reports.FAILED, reports.FAILED]
        assert job.status == reports.FAILED
        assert "database is locked" in job.error

    @pytest.mark.asyncio
    async def test_unwritable_failure_leaves_task_clean(self, db_session, clock, monkeypatch):
        async def broken_finish(job_id, now, **values):
            raise _locked()

        monkeypatch.setattr(reports, "_finish_job", broken_finish)

        started = await reports.start_report_job(db_session, "learner-1", clock=clock)
        [task] = [t for t in reports._background_tasks if t.get_name() == f"report-job-{started.job_id}"]
        await reports.drain_report_tasks(timeout=5.0)

        assert task.done()
        assert task.exception() is None
        job = await reports.get_report_job(db_session, started.job_id, "learner-1")
        assert job.status == reports.PROCESSING

        clock.advance(hours=1)
        await reap_once(get_session_factory(), timedelta(hours=2), clock, report_job_timeout=timedelta(minutes=30))

        job = await reports.get_report_job(db_session, started.job_id, "learner-1")
        assert job.status == reports.FAILED
        assert job.error == reports.INTERRUPTED_ERROR
        assert job.completed_at == clock()


class TestStaleReportJobs:
    @pytest.mark.asyncio
    async def test_orphaned_jobs_are_failed(self, db_session, clock):
        created = clock()
        db_session.add_all(
            [
                ReportJob(
                    id="old", learner_id="learner-1", timeframe="7d", status=reports.PROCESSING, created_at=created
                ),
                ReportJob(
                    id="done",
                    learner_id="learner-1",
                    timeframe="7d",
                    status=reports.COMPLETED,
                    created_at=created,
                    completed_at=created,
                ),
            ]
        )
        await db_session.commit()
        clock.advance(minutes=45)
        db_session.add(
            ReportJob(id="fresh", learner_id="learner-1", timeframe="7d", status=reports.PROCESSING, created_at=clock())
        )
        await db_session.commit()

        failed = await reports.fail_stale_report_jobs(db_session, clock(), timedelta(minutes=30))

        assert failed == 1
        old = await reports.get_report_job(db_session, "old", "learner-1")
        assert old.status == reports.FAILED
        assert old.error == reports.INTERRUPTED_ERROR
        assert (await reports.get_report_job(db_session, "done", "learner-1")).status == reports.COMPLETED
        assert (await reports.get_report_job(db_session, "fresh", "learner-1")).status == reports.PROCESSING

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, db_session, clock):
        db_session.add(
            ReportJob(id="old", learner_id="learner-1", timeframe="7d", status=reports.PROCESSING, created_at=clock())
        )
        await db_session.commit()
        clock.advance(hours=2)

        assert await reports.fail_stale_report_jobs(db_session, clock(), timedelta(minutes=30)) == 1
        assert await reports.fail_stale_report_jobs(db_session, clock(), timedelta(minutes=30)) == 0


class TestAnalyticsService:
    @pytest.mark.asyncio
    async def test_metrics_from_tracked_sessions(self, db_session, clock):
        service = AnalyticsService(db_session, clock=clock)
        await service.track_interaction("learner-1", "c1", "l1", action="play")
        await service.track_interaction("learner-1", "c1", "l1", action="note_created", data={"noteId": "n1"})
        await service.track_interaction(
            "learner-1", "c1", "l1", action="quiz_completed", data={"quizId": "q1", "score": 80}
        )
        clock.advance(minutes=10)
        await service.track_interaction(
            "learner-1", "c1", "l1", session_data=SessionUpdate(end_time=True, video_progress=92)
        )

        metrics = await service.get_performance_metrics("learner-1")

        assert metrics.total_sessions == 1
        assert metrics.engagement_score == 45
        assert metrics.completion_rate == 100
        assert metrics.average_watch_time_minutes == 10
        assert metrics.quiz_performance.total_quizzes == 1
        assert metrics.quiz_performance.average_score == 80
        assert metrics.learning_patterns.consistency == "New learner"
        assert metrics.calculated_at == clock()

    @pytest.mark.asyncio
    async def test_metrics_respect_timeframe_and_course(self, db_session, clock):
        service = AnalyticsService(db_session, clock=clock)
        await service.track_interaction("learner-1", "c1", "l1", action="play")
        clock.advance(days=10)
        await service.track_interaction("learner-1", "c2", "l1", action="play")

        assert (await service.get_performance_metrics("learner-1", timeframe="7d")).total_sessions == 1
        assert (await service.get_performance_metrics("learner-1", timeframe="30d")).total_sessions == 2
        assert (await service.get_performance_metrics("learner-1", "c1", "30d")).total_sessions == 1

    @pytest.mark.asyncio
    async def test_empty_metrics(self, db_session, clock):
        metrics = await AnalyticsService(db_session, clock=clock).get_performance_metrics("learner-1")
        assert metrics.total_sessions == 0
        assert metrics.engagement_score == 0
        assert metrics.learning_patterns.preferred_time == "No data"

    @pytest.mark.asyncio
    async def test_course_insights(self, db_session, clock):
        service = AnalyticsService(db_session, clock=clock)
        for learner, lesson, progress in [
            ("learner-1", "l1", 80),
            ("learner-2", "l1", 40),
            ("learner-2", "l2", 90),
        ]:
            await service.track_interaction(
                learner, "c1", lesson, action="play", session_data=SessionUpdate(video_progress=progress)
            )
        await service.track_interaction("learner-3", "c2", "l9", action="play")

        insights = await service.get_course_insights("c1")

        assert insights.total_learners == 2
        assert insights.total_sessions == 3
        assert insights.average_completion == 70
        assert insights.most_popular_lesson == "l1"

    @pytest.mark.asyncio
    async def test_course_insights_ignore_old_sessions(self, db_session, clock):
        service = AnalyticsService(db_session, clock=clock)
        await service.track_interaction("learner-1", "c1", "l1", action="play")
        clock.advance(days=31)

        insights = await service.get_course_insights("c1", timeframe="30d")
        assert insights.total_sessions == 0
        assert insights.most_popular_lesson is None

    @pytest.mark.asyncio
    async def test_report_inline(self, db_session, clock):
        service = AnalyticsService(db_session, clock=clock)
        await _watch_lesson(db_session, clock)

        report = await service.get_performance_report("learner-1", timeframe="30d")
        assert report.generated_at == clock()
        assert report.summary.average_completion == "100%"
