"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

os.environ["LP_JWT_SECRET"] = "test-secret-not-for-production"
os.environ["LP_LOG_FORMAT"] = "console"

from learnpulse.analytics.reports import drain_report_tasks  # noqa: E402
from learnpulse.config import get_settings  # noqa: E402
from learnpulse.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from learnpulse.db import models  # noqa: E402, F401
from learnpulse.db.base import Base  # noqa: E402
from learnpulse.db.models import Course  # noqa: E402

get_settings.cache_clear()

# Wednesday; the week starts Sunday 2026-03-01
BASE_TIME = datetime(2026, 3, 4, 10, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[None, None]:
    """Fresh SQLite database file with every table created."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'learnpulse_test.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await drain_report_tasks(timeout=5.0)
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for setup and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def seed_course(db_session: AsyncSession) -> Callable:
    """Insert catalog courses: `await seed_course("c1", total_lessons=4)`."""

    async def _seed(course_id: str, total_lessons: int, title: str = "Test course") -> None:
        db_session.add(Course(id=course_id, title=title, total_lessons=total_lessons))
        await db_session.commit()

    return _seed


def make_token(
    sub: str = "learner-1",
    role: str = "student",
    expires_in: timedelta = timedelta(minutes=15),
    **claims: object,
) -> str:
    """Access token signed like the platform's auth service signs them."""
    settings = get_settings()
    payload = {
        "sub": sub,
        "role": role,
        "type": "access",
        "iss": settings.jwt_issuer,
        "exp": datetime.now(timezone.utc) + expires_in,
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture
def token_factory() -> Callable[..., str]:
    return make_token


@pytest_asyncio.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against a fresh app; no Redis, so rate limiting is off."""
    from learnpulse.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient) -> AsyncClient:
    """Client authenticated as learner-1."""
    client.headers["Authorization"] = f"Bearer {make_token('learner-1')}"
    return client
