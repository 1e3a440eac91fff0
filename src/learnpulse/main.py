"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from redis.exceptions import RedisError

from learnpulse.achievements.router import router as achievements_router
from learnpulse.analytics.reports import drain_report_tasks
from learnpulse.analytics.router import router as analytics_router
from learnpulse.config import get_settings
from learnpulse.database import close_db, get_session_factory, init_db
from learnpulse.health.router import router as health_router
from learnpulse.middleware import setup_middleware
from learnpulse.progress.router import router as progress_router
from learnpulse.redis_client import close_redis, get_redis, init_redis
from learnpulse.workers.session_reaper import reaper_loop

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    try:
        await get_redis().ping()
    except RedisError:
        # Rate limiting and achievement events are skipped without Redis
        logger.warning("Redis unreachable at startup, continuing without it", exc_info=True)
        await close_redis()

    stop_reaper = asyncio.Event()
    reaper_task = asyncio.create_task(
        reaper_loop(
            get_session_factory(),
            settings.session_reaper_interval_seconds,
            timedelta(minutes=settings.session_idle_timeout_minutes),
            stop=stop_reaper,
            report_job_timeout=timedelta(minutes=settings.report_job_timeout_minutes),
        )
    )

    yield

    stop_reaper.set()
    reaper_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await reaper_task

    await drain_report_tasks()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="LearnPulse API",
        description="Learning progress tracking and performance analytics for online courses",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progress_router)
    app.include_router(achievements_router)
    app.include_router(analytics_router)

    return app


app = create_app()
