"""Measurement and event stores backed by SQLAlchemy async sessions."""
import logging
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..errors import StorageFailureError
from ..models import Event, Measurement, PreviousState
from ..utils.db_utils import retry_on_lock
from ..utils.time_utils import to_naive_utc

logger = logging.getLogger(__name__)


class MeasurementStore:
    """Persists measurements and answers range and recency queries.

    The most recent measurements are also kept in memory (``cache_size``) so the
    dashboard's "recent" and "latest" reads do not hit the database.
    """

    def __init__(self, session_factory: async_sessionmaker, cache_size: int = 500):
        self.session_factory = session_factory
        self.cache_size = cache_size
        self._cache: Deque[Measurement] = deque(maxlen=cache_size or None)
        self._cache_complete = False

    async def warm_cache(self):
        """Load the newest rows into the in-memory window."""
        rows = await self._query_recent(self.cache_size)
        self._cache.clear()
        self._cache.extend(rows)
        # Fewer rows than the window means the cache holds the whole table
        self._cache_complete = len(rows) < self.cache_size

    async def insert(self, measurement: Measurement) -> Measurement:
        """Store a measurement and return it with its id assigned.

        Raises:
            TypeError: if given anything other than a Measurement
            StorageFailureError: if the database write fails
        """
        if not isinstance(measurement, Measurement):
            raise TypeError(f"Expected Measurement, got {type(measurement).__name__}")

        async def do_insert():
            async with self.session_factory() as session:
                session.add(measurement)
                await session.commit()
                return measurement

        try:
            stored = await retry_on_lock(do_insert)
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to store measurement: {e}") from e

        self._remember(stored)
        return stored

    def _remember(self, measurement: Measurement):
        if not self.cache_size:
            return
        # Evicting a row means the window no longer covers the whole table
        if len(self._cache) >= self.cache_size:
            self._cache_complete = False
        # Keep the window sorted; inserts are nearly always the newest row
        if self._cache and measurement.timestamp < self._cache[-1].timestamp:
            items = sorted([*self._cache, measurement], key=lambda m: m.timestamp)
            self._cache.clear()
            self._cache.extend(items[-self.cache_size:])
        else:
            self._cache.append(measurement)

    async def _query_recent(self, limit: int) -> List[Measurement]:
        if limit <= 0:
            return []
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Measurement)
                    .order_by(Measurement.timestamp.desc())
                    .limit(limit)
                )
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to load measurements: {e}") from e
        rows.reverse()
        return rows

    async def find_recent(self, limit: int = 50) -> List[Measurement]:
        """Newest ``limit`` measurements, oldest first."""
        if limit <= 0:
            return []
        if len(self._cache) >= limit or (self._cache_complete and self._cache):
            return list(self._cache)[-limit:]
        return await self._query_recent(limit)

    async def find_latest(self) -> Optional[Measurement]:
        if self._cache:
            return self._cache[-1]
        rows = await self._query_recent(1)
        return rows[0] if rows else None

    async def find_by_date_range(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> List[Measurement]:
        """Measurements with from_date <= timestamp <= to_date, oldest first."""
        query = select(Measurement).order_by(Measurement.timestamp.asc())
        if from_date:
            query = query.where(Measurement.timestamp >= to_naive_utc(from_date))
        if to_date:
            query = query.where(Measurement.timestamp <= to_naive_utc(to_date))
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to load measurements: {e}") from e

    async def get_last_known_state(self) -> Optional[PreviousState]:
        """Status, download speed and time of the newest stored measurement."""
        latest = await self.find_latest()
        if latest is None:
            return None
        return PreviousState.from_measurement(latest)

    async def count(self) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(func.count(Measurement.id)))
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to count rows: {e}") from e

    async def get_date_range(self) -> Dict[str, Optional[datetime]]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(func.min(Measurement.timestamp), func.max(Measurement.timestamp))
                )
                oldest, newest = result.one()
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to read date range: {e}") from e
        return {"oldest": oldest, "newest": newest}

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete measurements strictly older than cutoff. Returns the row count."""
        async def do_delete():
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(Measurement).where(Measurement.timestamp < to_naive_utc(cutoff))
                )
                await session.commit()
                return result.rowcount

        try:
            deleted = await retry_on_lock(do_delete)
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to delete measurements: {e}") from e

        # Reload lazily on the next read
        self._cache.clear()
        self._cache_complete = False
        return deleted or 0


class EventStore:
    """Persists detected events."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def insert(self, event: Event) -> Event:
        """Store an event.

        Raises:
            TypeError: if given anything other than an Event
            StorageFailureError: if the database write fails
        """
        if not isinstance(event, Event):
            raise TypeError(f"Expected Event, got {type(event).__name__}")

        async def do_insert():
            async with self.session_factory() as session:
                session.add(event)
                await session.commit()
                return event

        try:
            return await retry_on_lock(do_insert)
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to store event: {e}") from e

    async def _fetch(self, query) -> List[Event]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to load events: {e}") from e

    async def find_recent(self, limit: int = 50) -> List[Event]:
        """Newest ``limit`` events, newest first."""
        if limit <= 0:
            return []
        return await self._fetch(
            select(Event).order_by(Event.timestamp.desc()).limit(limit)
        )

    async def find_by_date_range(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> List[Event]:
        """Events with from_date <= timestamp <= to_date, oldest first."""
        query = select(Event).order_by(Event.timestamp.asc())
        if from_date:
            query = query.where(Event.timestamp >= to_naive_utc(from_date))
        if to_date:
            query = query.where(Event.timestamp <= to_naive_utc(to_date))
        return await self._fetch(query)

    async def find_by_type(self, event_type: str, limit: int = 50) -> List[Event]:
        return await self._fetch(
            select(Event)
            .where(Event.type == event_type)
            .order_by(Event.timestamp.desc())
            .limit(limit)
        )

    async def count(self) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(func.count(Event.id)))
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to count rows: {e}") from e

    async def delete_older_than(self, cutoff: datetime) -> int:
        async def do_delete():
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(Event).where(Event.timestamp < to_naive_utc(cutoff))
                )
                await session.commit()
                return result.rowcount

        try:
            return (await retry_on_lock(do_delete)) or 0
        except SQLAlchemyError as e:
            raise StorageFailureError(f"Failed to delete events: {e}") from e
