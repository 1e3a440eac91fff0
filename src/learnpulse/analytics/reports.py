"""
Detached performance-report jobs.

A job row is created in state `processing` and a background task computes
the report with its own database session. The task moves the job to
`completed` or `failed` with a single conditional write, so a job never
changes again once it has left `processing`. Jobs orphaned by a crash or
restart are failed by `fail_stale_report_jobs`, which the session reaper
runs on every pass.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from learnpulse.analytics.insights import InsightGenerator
from learnpulse.analytics.metrics import normalize_timeframe
from learnpulse.analytics.schemas import PerformanceReport, ReportJobResponse
from learnpulse.analytics.service import AnalyticsService
from learnpulse.clock import Clock, ensure_utc, utc_now
from learnpulse.database import get_session_factory
from learnpulse.db.models import ReportJob
from learnpulse.errors import ReportJobNotFoundError

logger = logging.getLogger(__name__)

PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

FAILURE_WRITE_ATTEMPTS = 3
INTERRUPTED_ERROR = "Report generation was interrupted"

# Strong references to running jobs; the event loop only keeps weak ones.
_background_tasks: set[asyncio.Task[None]] = set()


def _to_response(job: ReportJob) -> ReportJobResponse:
    return ReportJobResponse(
        job_id=job.id,
        status=job.status,
        report=PerformanceReport.model_validate(job.report) if job.report is not None else None,
        error=job.error,
        created_at=ensure_utc(job.created_at),
        completed_at=ensure_utc(job.completed_at) if job.completed_at is not None else None,
    )


async def start_report_job(
    db: AsyncSession,
    learner_id: str,
    course_id: str | None = None,
    timeframe: str = "30d",
    generator: InsightGenerator | None = None,
    clock: Clock = utc_now,
) -> ReportJobResponse:
    """Persist a processing job and start generating its report in the background."""
    job = ReportJob(
        id=str(uuid.uuid4()),
        learner_id=learner_id,
        course_id=course_id,
        timeframe=normalize_timeframe(timeframe),
        status=PROCESSING,
        created_at=clock(),
    )
    db.add(job)
    await db.commit()

    task = asyncio.create_task(
        _run_report_job(job.id, learner_id, course_id, job.timeframe, generator, clock),
        name=f"report-job-{job.id}",
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    logger.info("Started report job %s for learner %s", job.id, learner_id)
    return _to_response(job)


async def _finish_job(job_id: str, now: datetime, **values: Any) -> bool:
    """Write the terminal state. False if the job already left `processing`."""
    async with get_session_factory()() as db:
        result = await db.execute(
            update(ReportJob)
            .where(ReportJob.id == job_id, ReportJob.status == PROCESSING)
            .values(completed_at=now, **values)
        )
        await db.commit()
        return result.rowcount == 1


async def _mark_failed(job_id: str, clock: Clock, error: str) -> None:
    """Write the `failed` state, retrying a few times. Never raises."""
    for attempt in range(1, FAILURE_WRITE_ATTEMPTS + 1):
        try:
            await _finish_job(job_id, clock(), status=FAILED, error=error)
            return
        except Exception:
            if attempt == FAILURE_WRITE_ATTEMPTS:
                logger.exception(
                    "Could not mark report job %s failed after %d attempts", job_id, FAILURE_WRITE_ATTEMPTS
                )
                return
            logger.warning("Failed-state write for report job %s failed (attempt %d)", job_id, attempt)
            await asyncio.sleep(0.05 * attempt)


async def _run_report_job(
    job_id: str,
    learner_id: str,
    course_id: str | None,
    timeframe: str,
    generator: InsightGenerator | None,
    clock: Clock,
) -> None:
    try:
        async with get_session_factory()() as db:
            service = AnalyticsService(db, clock=clock, generator=generator)
            report = await service.get_performance_report(learner_id, course_id, timeframe)
        await _finish_job(job_id, clock(), status=COMPLETED, report=report.model_dump(mode="json"))
    except asyncio.CancelledError:
        await _mark_failed(job_id, clock, "Report generation was cancelled")
        raise
    except Exception as exc:
        logger.warning("Report job %s failed", job_id, exc_info=True)
        await _mark_failed(job_id, clock, str(exc) or type(exc).__name__)
        return
    logger.info("Report job %s completed", job_id)


async def get_report_job(db: AsyncSession, job_id: str, learner_id: str) -> ReportJobResponse:
    """Current state of a learner's report job."""
    result = await db.execute(
        select(ReportJob)
        .where(ReportJob.id == job_id, ReportJob.learner_id == learner_id)
        .execution_options(populate_existing=True)
    )
    job = result.scalar_one_or_none()
    if job is None:
        raise ReportJobNotFoundError(job_id)
    return _to_response(job)


async def fail_stale_report_jobs(db: AsyncSession, now: datetime, max_age: timedelta) -> int:
    """Fail jobs still `processing` longer than `max_age` after creation.

    Covers tasks lost to a crash or restart and tasks whose own failure
    write could not be stored. Returns the number of jobs failed.
    """
    result = await db.execute(
        update(ReportJob)
        .where(ReportJob.status == PROCESSING, ReportJob.created_at < now - max_age)
        .values(status=FAILED, error=INTERRUPTED_ERROR, completed_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount:
        logger.warning("Failed %d stale report jobs", result.rowcount)
    return result.rowcount


async def drain_report_tasks(timeout: float = 10.0) -> None:
    """Wait for running report jobs; cancel any still running after `timeout`."""
    if not _background_tasks:
        return
    pending = set(_background_tasks)
    _, still_running = await asyncio.wait(pending, timeout=timeout)
    for task in still_running:
        task.cancel()
    if still_running:
        await asyncio.gather(*still_running, return_exceptions=True)
