"""Course catalog lookups needed by progress calculation."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learnpulse.db.models import Course


class CourseCatalog(Protocol):
    async def total_lessons(self, course_id: str) -> int: ...


class SqlCourseCatalog:
    """Reads lesson counts from the catalog's courses table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def total_lessons(self, course_id: str) -> int:
        """Lesson count of the course; 0 for unknown courses."""
        result = await self.db.execute(select(Course.total_lessons).where(Course.id == course_id))
        return result.scalar_one_or_none() or 0
