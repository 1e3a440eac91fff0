"""Closes analytics sessions that were left open and fails orphaned report jobs.

Players do not always send an end event (tab closed, network lost). Open
sessions idle for longer than `session_idle_timeout_minutes` are closed at
their last activity. Report jobs still `processing` after
`report_job_timeout_minutes` lost their task (crash, restart) and are marked
failed. The API process runs `reaper_loop` from its lifespan, so the first
pass happens at startup; this module can also run on its own.

Usage: python -m learnpulse.workers.session_reaper
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from learnpulse.analytics.reports import fail_stale_report_jobs
from learnpulse.analytics.sessions import close_stale_sessions
from learnpulse.clock import Clock, utc_now
from learnpulse.config import get_settings
from learnpulse.database import close_db, get_session_factory, init_db

logger = logging.getLogger(__name__)


async def reap_once(
    session_factory: async_sessionmaker[AsyncSession],
    idle_timeout: timedelta,
    clock: Clock = utc_now,
    report_job_timeout: timedelta | None = None,
) -> int:
    """Run one reaper pass; returns the number of sessions closed."""
    async with session_factory() as db:
        closed = await close_stale_sessions(db, clock(), idle_timeout)
        if report_job_timeout is not None:
            await fail_stale_report_jobs(db, clock(), report_job_timeout)
        return closed


async def reaper_loop(
    session_factory: async_sessionmaker[AsyncSession],
    interval_seconds: float,
    idle_timeout: timedelta,
    stop: asyncio.Event | None = None,
    clock: Clock = utc_now,
    report_job_timeout: timedelta | None = None,
) -> None:
    """Reap every `interval_seconds` until `stop` is set or the task is cancelled."""
    stop = stop or asyncio.Event()
    while not stop.is_set():
        try:
            await reap_once(session_factory, idle_timeout, clock, report_job_timeout)
        except Exception:
            logger.exception("Session reaper pass failed")
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass


async def main() -> None:
    settings = get_settings()
    await init_db(settings.database_url)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info(
        "Starting session reaper (interval=%ss, idle timeout=%sm)",
        settings.session_reaper_interval_seconds,
        settings.session_idle_timeout_minutes,
    )
    try:
        await reaper_loop(
            get_session_factory(),
            settings.session_reaper_interval_seconds,
            timedelta(minutes=settings.session_idle_timeout_minutes),
            stop=stop,
            report_job_timeout=timedelta(minutes=settings.report_job_timeout_minutes),
        )
    finally:
        await close_db()
        logger.info("Session reaper stopped")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(main())
