"""Analytics session tracking.

One open session per (learner, course, lesson). Interactions are appended as
rows; the session row only changes for the video-progress snapshot and the
single close.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from learnpulse.analytics.interactions import InteractionKind, load_payload, parse_interaction, video_position
from learnpulse.analytics.schemas import InteractionRecord, SessionRecord, SessionUpdate
from learnpulse.clock import ensure_utc
from learnpulse.db.models import AnalyticsInteraction, AnalyticsSession
from learnpulse.errors import SessionConflictError
from learnpulse.rounding import clamp

logger = logging.getLogger(__name__)


async def _open_session_id(db: AsyncSession, learner_id: str, course_id: str, lesson_id: str) -> str | None:
    result = await db.execute(
        select(AnalyticsSession.id).where(
            AnalyticsSession.learner_id == learner_id,
            AnalyticsSession.course_id == course_id,
            AnalyticsSession.lesson_id == lesson_id,
            AnalyticsSession.end_time.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_or_create_open_session(
    db: AsyncSession,
    learner_id: str,
    course_id: str,
    lesson_id: str,
    now: datetime,
) -> str:
    """Return the id of the open session for the triple, creating it if needed.

    A concurrent creator that wins the partial unique index makes our insert
    fail; the winner's session is then re-selected and used.
    """
    existing = await _open_session_id(db, learner_id, course_id, lesson_id)
    if existing is not None:
        return existing

    session_id = str(uuid.uuid4())
    db.add(
        AnalyticsSession(
            id=session_id,
            learner_id=learner_id,
            course_id=course_id,
            lesson_id=lesson_id,
            start_time=now,
            video_progress_percent=0.0,
            created_at=now,
        )
    )
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        existing = await _open_session_id(db, learner_id, course_id, lesson_id)
        if existing is None:
            msg = f"Open session for {learner_id}/{course_id}/{lesson_id} vanished after create race"
            raise SessionConflictError(msg) from None
        logger.debug("Lost open-session create race for %s/%s/%s", learner_id, course_id, lesson_id)
        return existing
    return session_id


async def append_interaction(
    db: AsyncSession,
    session_id: str,
    action: str,
    data: dict | None,
    now: datetime,
) -> None:
    payload = parse_interaction(action, data)
    db.add(
        AnalyticsInteraction(
            session_id=session_id,
            action=action,
            kind=payload.kind,
            occurred_at=now,
            video_timestamp_seconds=video_position(payload),
            data=payload.model_dump(mode="json"),
        )
    )


async def set_video_progress(db: AsyncSession, session_id: str, percent: float) -> None:
    """Overwrite the progress snapshot of an open session (last write wins)."""
    await db.execute(
        update(AnalyticsSession)
        .where(AnalyticsSession.id == session_id, AnalyticsSession.end_time.is_(None))
        .values(video_progress_percent=clamp(percent))
    )


async def close_session(db: AsyncSession, session_id: str, end_time: datetime) -> bool:
    """Close an open session. Returns False if it was already closed."""
    result = await db.execute(select(AnalyticsSession.start_time).where(AnalyticsSession.id == session_id))
    start_time = result.scalar_one_or_none()
    if start_time is None:
        return False
    duration = max(0, math.floor((end_time - ensure_utc(start_time)).total_seconds()))
    closed = await db.execute(
        update(AnalyticsSession)
        .where(AnalyticsSession.id == session_id, AnalyticsSession.end_time.is_(None))
        .values(end_time=end_time, duration_seconds=duration)
    )
    if closed.rowcount != 1:
        logger.debug("Session %s already closed", session_id)
        return False
    return True


async def track(
    db: AsyncSession,
    learner_id: str,
    course_id: str,
    lesson_id: str,
    now: datetime,
    action: str | None = None,
    data: dict | None = None,
    session_update: SessionUpdate | None = None,
) -> str:
    """Record one tracking call and return the session id it landed in."""
    session_id = await get_or_create_open_session(db, learner_id, course_id, lesson_id, now)

    if action:
        await append_interaction(db, session_id, action, data, now)

    if session_update is not None:
        if session_update.video_progress is not None:
            await set_video_progress(db, session_id, session_update.video_progress)
        if session_update.end_time:
            await close_session(db, session_id, now)

    await db.commit()
    return session_id


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def to_record(row: AnalyticsSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        learner_id=row.learner_id,
        course_id=row.course_id,
        lesson_id=row.lesson_id,
        start_time=ensure_utc(row.start_time),
        end_time=ensure_utc(row.end_time) if row.end_time is not None else None,
        duration_seconds=row.duration_seconds,
        video_progress_percent=row.video_progress_percent,
        created_at=ensure_utc(row.created_at),
        interactions=tuple(
            InteractionRecord(
                action=i.action,
                kind=InteractionKind(i.kind),
                occurred_at=ensure_utc(i.occurred_at),
                video_timestamp_seconds=i.video_timestamp_seconds,
                data=load_payload(i.data),
            )
            for i in row.interactions
        ),
    )


async def load_sessions(
    db: AsyncSession,
    learner_id: str,
    since: datetime,
    course_id: str | None = None,
) -> list[SessionRecord]:
    """Learner's sessions created at or after `since`, oldest first.

    Reads committed state; rows cached in this session are refreshed.
    """
    stmt = (
        select(AnalyticsSession)
        .options(selectinload(AnalyticsSession.interactions))
        .where(AnalyticsSession.learner_id == learner_id, AnalyticsSession.created_at >= since)
        .order_by(AnalyticsSession.created_at, AnalyticsSession.id)
        .execution_options(populate_existing=True)
    )
    if course_id is not None:
        stmt = stmt.where(AnalyticsSession.course_id == course_id)
    result = await db.execute(stmt)
    return [to_record(row) for row in result.scalars().all()]


async def load_course_sessions(db: AsyncSession, course_id: str, since: datetime) -> list[SessionRecord]:
    """All learners' sessions in a course created at or after `since`, oldest first."""
    result = await db.execute(
        select(AnalyticsSession)
        .options(selectinload(AnalyticsSession.interactions))
        .where(AnalyticsSession.course_id == course_id, AnalyticsSession.created_at >= since)
        .order_by(AnalyticsSession.created_at, AnalyticsSession.id)
        .execution_options(populate_existing=True)
    )
    return [to_record(row) for row in result.scalars().all()]


# ---------------------------------------------------------------------------
# Reaper
# ---------------------------------------------------------------------------


async def close_stale_sessions(db: AsyncSession, now: datetime, idle_timeout: timedelta) -> int:
    """Close open sessions with no activity for `idle_timeout`.

    Last activity is the latest interaction, or the start time when there
    are none. The session is closed at its last activity, not at `now`.
    Returns the number of sessions closed.
    """
    last_interaction = (
        select(
            AnalyticsInteraction.session_id.label("session_id"),
            func.max(AnalyticsInteraction.occurred_at).label("last_at"),
        )
        .group_by(AnalyticsInteraction.session_id)
        .subquery()
    )
    result = await db.execute(
        select(AnalyticsSession.id, AnalyticsSession.start_time, last_interaction.c.last_at)
        .outerjoin(last_interaction, last_interaction.c.session_id == AnalyticsSession.id)
        .where(AnalyticsSession.end_time.is_(None))
    )

    cutoff = now - idle_timeout
    closed = 0
    for session_id, start_time, last_at in result.all():
        last_activity = ensure_utc(last_at if last_at is not None else start_time)
        if last_activity > cutoff:
            continue
        if await close_session(db, session_id, last_activity):
            closed += 1

    await db.commit()
    if closed:
        logger.info("Closed %d idle analytics sessions", closed)
    return closed
