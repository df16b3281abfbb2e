"""Pipeline coordinator - wires collector, detector, stores and analytics together.

Each ``PipelineCoordinator`` owns its own collector, detector, stores and
scheduler, so independent pipelines can run side by side.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..config import Settings
from ..errors import StorageFailureError
from ..models import Event, Measurement
from ..utils.time_utils import utcnow
from .analytics import (
    AnalyticsConfig,
    Summary,
    TodayStats,
    UptimePeriod,
    compute_summary,
    compute_today_stats,
    compute_uptime_periods,
    group_events_by_type,
    start_of_day,
)
from .collector import MeasurementCollector
from .detector import DetectorThresholds, EventDetector
from .probe import create_probe
from .scheduler import SchedulerService
from .storage import EventStore, MeasurementStore

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "cleanup_old_records"


@dataclass
class Report:
    summary: Summary
    records: List[Measurement]
    from_date: Optional[datetime]
    to_date: Optional[datetime]


@dataclass
class DetailedStatistics:
    period_start: datetime
    period_end: datetime
    summary: Summary
    events_by_type: Dict[str, List[Event]]
    uptime_periods: List[UptimePeriod]
    database: Dict[str, Any]


class PipelineCoordinator:
    """Collector -> store -> detector -> store/publish, plus analytics on demand."""

    def __init__(
        self,
        collector: MeasurementCollector,
        detector: EventDetector,
        measurement_store: MeasurementStore,
        event_store: EventStore,
        scheduler: SchedulerService,
        analytics_config: Optional[AnalyticsConfig] = None,
        retention_hours: int = 168,
        cleanup_interval_minutes: int = 60,
    ):
        self.collector = collector
        self.detector = detector
        self.measurement_store = measurement_store
        self.event_store = event_store
        self.scheduler = scheduler
        self.analytics_config = analytics_config or AnalyticsConfig()
        self.retention_hours = retention_hours
        self.cleanup_interval_minutes = cleanup_interval_minutes

        # Detector sees measurements in collection order
        self.collector.on_measurement = self.detector.analyze

    async def start(self):
        logger.info("Starting monitoring pipeline")
        try:
            await self.measurement_store.warm_cache()
        except StorageFailureError as e:
            logger.error(f"Could not warm measurement cache: {e}")
        await self.detector.init()
        self.scheduler.start()
        await self.collector.start()
        if self.retention_hours > 0:
            self.scheduler.add_interval_job(
                CLEANUP_JOB_ID,
                self._scheduled_cleanup,
                self.cleanup_interval_minutes * 60,
            )

    def stop(self):
        self.collector.stop()
        self.scheduler.remove_job(CLEANUP_JOB_ID)
        self.scheduler.stop()
        logger.info("Monitoring pipeline stopped")

    async def trigger_measurement(self) -> Measurement:
        """Manual cycle. Raises TriggerTimeoutError if none completes in time."""
        return await self.collector.trigger_once()

    async def get_latest(self) -> Optional[Measurement]:
        return await self.measurement_store.find_latest()

    async def get_recent(self, limit: int = 50) -> List[Measurement]:
        return await self.measurement_store.find_recent(limit)

    async def get_summary(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> Summary:
        measurements = await self.measurement_store.find_by_date_range(from_date, to_date)
        return compute_summary(measurements, self.analytics_config)

    async def get_report(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> Report:
        records = await self.measurement_store.find_by_date_range(from_date, to_date)
        return Report(
            summary=compute_summary(records, self.analytics_config),
            records=records,
            from_date=from_date,
            to_date=to_date,
        )

    async def get_today_stats(self, now: Optional[datetime] = None) -> TodayStats:
        now = now or utcnow()
        measurements = await self.measurement_store.find_by_date_range(start_of_day(now), now)
        return compute_today_stats(measurements, now, self.analytics_config)

    async def get_detailed_statistics(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> DetailedStatistics:
        """Summary, events and uptime periods for a window (default: last 24 hours)."""
        to_date = to_date or utcnow()
        from_date = from_date or to_date - timedelta(hours=24)

        measurements = await self.measurement_store.find_by_date_range(from_date, to_date)
        events = await self.event_store.find_by_date_range(from_date, to_date)

        return DetailedStatistics(
            period_start=from_date,
            period_end=to_date,
            summary=compute_summary(measurements, self.analytics_config),
            events_by_type=group_events_by_type(events),
            uptime_periods=compute_uptime_periods(measurements),
            database=await self.get_database_stats(),
        )

    async def get_recent_events(self, limit: int = 50) -> List[Event]:
        return await self.event_store.find_recent(limit)

    async def get_events(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        event_type: Optional[str] = None,
    ) -> List[Event]:
        events = await self.event_store.find_by_date_range(from_date, to_date)
        if event_type:
            events = [e for e in events if e.type == event_type]
        return events

    async def get_database_stats(self) -> Dict[str, Any]:
        date_range = await self.measurement_store.get_date_range()
        return {
            "measurements": await self.measurement_store.count(),
            "events": await self.event_store.count(),
            "oldest_measurement": date_range["oldest"],
            "newest_measurement": date_range["newest"],
            "retention_hours": self.retention_hours,
        }

    async def cleanup(self, older_than_hours: Optional[int] = None) -> Dict[str, Any]:
        """Delete measurements and events older than the retention window."""
        hours = older_than_hours if older_than_hours is not None else self.retention_hours
        cutoff = utcnow() - timedelta(hours=hours)
        deleted_measurements = await self.measurement_store.delete_older_than(cutoff)
        deleted_events = await self.event_store.delete_older_than(cutoff)
        logger.info(
            f"Cleaned up {deleted_measurements} measurements and {deleted_events} events "
            f"older than {cutoff.isoformat()}"
        )
        return {
            "cutoff": cutoff,
            "deleted_measurements": deleted_measurements,
            "deleted_events": deleted_events,
        }

    async def _scheduled_cleanup(self):
        try:
            await self.cleanup()
        except Exception as e:
            logger.error(f"Error cleaning up records: {e}")


def build_pipeline(settings: Settings, session_factory, publish=None, probe=None) -> PipelineCoordinator:
    """Create a fully wired pipeline from settings."""
    measurement_store = MeasurementStore(session_factory, cache_size=settings.recent_cache_size)
    event_store = EventStore(session_factory)
    scheduler = SchedulerService()

    detector = EventDetector(
        event_store,
        measurement_store,
        publish=publish,
        thresholds=DetectorThresholds.from_settings(settings),
    )
    collector = MeasurementCollector(
        probe or create_probe(settings),
        measurement_store,
        scheduler,
        publish=publish,
        interval_ms=settings.monitor_interval_ms,
        probe_timeout_ms=settings.probe_timeout_ms,
        trigger_margin_ms=settings.trigger_margin_ms,
    )
    return PipelineCoordinator(
        collector,
        detector,
        measurement_store,
        event_store,
        scheduler,
        analytics_config=settings.analytics_config(),
        retention_hours=settings.retention_hours,
        cleanup_interval_minutes=settings.cleanup_interval_minutes,
    )
