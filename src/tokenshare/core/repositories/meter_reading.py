"""Repository for MeterReading model."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from tokenshare.core.models import MeterReading
from tokenshare.core.repositories.base import BaseRepository


class MeterReadingRepository(BaseRepository[MeterReading]):
    """Meter reading-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(MeterReading)

    def _excluding(self, exclude_id: UUID | str | None):
        query = self.model.all()
        if exclude_id:
            query = query.exclude(id=exclude_id)
        return query

    async def _on_date(
        self, target: MeterReading | None, exclude_id: UUID | str | None
    ) -> list[MeterReading]:
        if target is None:
            return []
        return await self._excluding(exclude_id).filter(reading_date=target.reading_date)

    async def find_previous(
        self, target_date: date, exclude_id: UUID | str | None = None
    ) -> MeterReading | None:
        """Most recent reading (across all users) strictly before a date."""
        latest = (
            await self._excluding(exclude_id)
            .filter(reading_date__lt=target_date)
            .order_by("-reading_date")
            .first()
        )
        same_day = await self._on_date(latest, exclude_id)
        return max(same_day, key=lambda r: r.reading, default=None)

    async def find_next(
        self, target_date: date, exclude_id: UUID | str | None = None
    ) -> MeterReading | None:
        """Earliest reading (across all users) strictly after a date."""
        earliest = (
            await self._excluding(exclude_id)
            .filter(reading_date__gt=target_date)
            .order_by("reading_date")
            .first()
        )
        same_day = await self._on_date(earliest, exclude_id)
        return min(same_day, key=lambda r: r.reading, default=None)

    async def highest_on_date(
        self, target_date: date, exclude_id: UUID | str | None = None
    ) -> MeterReading | None:
        """The highest reading recorded on exactly ``target_date``."""
        readings = await self._excluding(exclude_id).filter(reading_date=target_date)
        return max(readings, key=lambda r: r.reading, default=None)

    async def for_user_on_date(
        self,
        user_id: UUID | str,
        target_date: date,
        exclude_id: UUID | str | None = None,
    ) -> MeterReading | None:
        """A user's reading on a specific date."""
        return (
            await self._excluding(exclude_id)
            .filter(user_id=user_id, reading_date=target_date)
            .first()
        )

    async def history(
        self, user_id: UUID | str, before: date, limit: int = 30
    ) -> list[MeterReading]:
        """A user's latest readings before a date, newest first."""
        return (
            await self.model.filter(user_id=user_id, reading_date__lt=before)
            .order_by("-reading_date")
            .limit(limit)
        )
