"""Measurement collector - runs one probe cycle at a time on a fixed schedule.

A cycle asks the probe for a result, wraps it into a timestamped Measurement,
persists it, publishes it and hands it to ``on_measurement`` (the event
detector). Only one cycle may be in flight: an overlapping call returns None
without probing.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

from ..errors import StorageFailureError, TriggerTimeoutError
from ..models import Measurement, MeasurementStatus
from ..utils.time_utils import utcnow
from .probe import Probe, ProbeResult

logger = logging.getLogger(__name__)

COLLECT_JOB_ID = "collect_measurement"

Publish = Callable[[str, object], Awaitable[None]]


def measurement_payload(measurement: Measurement) -> dict:
    """Plain dict form of a measurement for the publish channel."""
    return {
        "id": measurement.id,
        "timestamp": measurement.timestamp.isoformat() if measurement.timestamp else None,
        "status": measurement.status,
        "download_mbps": measurement.download_mbps,
        "upload_mbps": measurement.upload_mbps,
        "latency_ms": measurement.latency_ms,
        "jitter_ms": measurement.jitter_ms,
        "packet_loss_percent": measurement.packet_loss_percent,
        "duration_since_last_ms": measurement.duration_since_last_ms,
        "estimated_downtime_ms": measurement.estimated_downtime_ms,
        "error": measurement.error,
        "meta": measurement.meta,
    }


class MeasurementCollector:
    """Single-flight periodic collector."""

    def __init__(
        self,
        probe: Probe,
        store,
        scheduler,
        publish: Optional[Publish] = None,
        interval_ms: int = 60_000,
        probe_timeout_ms: int = 100_000,
        trigger_margin_ms: int = 10_000,
        on_measurement: Optional[Callable[[Measurement], Awaitable[object]]] = None,
    ):
        self.probe = probe
        self.store = store
        self.scheduler = scheduler
        self.publish = publish
        self.interval_ms = interval_ms
        self.probe_timeout_ms = probe_timeout_ms
        self.trigger_margin_ms = trigger_margin_ms
        self.on_measurement = on_measurement

        self.running = False
        self.in_flight = False
        self.last_run_at: Optional[float] = None  # time.monotonic() of the last cycle start
        self._waiters: List[asyncio.Future] = []

    @property
    def trigger_timeout_ms(self) -> int:
        """How long a manual trigger waits for an in-flight cycle to finish."""
        return self.probe_timeout_ms + self.interval_ms + self.trigger_margin_ms

    async def collect(self, force: bool = False) -> Optional[Measurement]:
        """Run one cycle.

        Returns None without probing when a cycle is already in flight, or when
        the collector is stopped and ``force`` is not set.
        """
        if self.in_flight:
            logger.debug("Collection already in flight, skipping")
            return None
        if not self.running and not force:
            return None

        self.in_flight = True
        try:
            started = time.monotonic()
            if self.last_run_at is None:
                duration_since_last_ms = self.interval_ms
            else:
                duration_since_last_ms = int((started - self.last_run_at) * 1000)
            self.last_run_at = started

            result = await self._run_probe()
            measurement = self._build_measurement(result, duration_since_last_ms)
            measurement = await self._persist(measurement)

            logger.info(
                "Measurement collected: %s (down=%s up=%s latency=%s)",
                measurement.status,
                measurement.download_mbps,
                measurement.upload_mbps,
                measurement.latency_ms,
            )

            await self._publish(measurement)
            if self.on_measurement is not None:
                try:
                    await self.on_measurement(measurement)
                except Exception as e:
                    logger.error(f"Measurement handler failed: {e}", exc_info=True)
        finally:
            self.in_flight = False

        self._resolve_waiters(measurement)
        return measurement

    async def _run_probe(self) -> ProbeResult:
        try:
            return await self.probe.measure()
        except Exception as e:
            # Probes report failures as results; anything raised here is a bug in the probe
            logger.error(f"Probe raised unexpectedly: {e}", exc_info=True)
            return ProbeResult(
                status=MeasurementStatus.DEGRADED,
                error={"message": str(e) or type(e).__name__, "code": "PROBE_ERROR"},
                meta={"note": "Probe raised an unexpected error"},
            )

    def _build_measurement(self, result: ProbeResult, duration_since_last_ms: int) -> Measurement:
        online = result.status == MeasurementStatus.ONLINE
        return Measurement(
            timestamp=utcnow(),
            status=result.status,
            download_mbps=result.download_mbps,
            upload_mbps=result.upload_mbps,
            latency_ms=result.latency_ms,
            jitter_ms=result.jitter_ms,
            packet_loss_percent=result.packet_loss_percent,
            duration_since_last_ms=duration_since_last_ms,
            estimated_downtime_ms=None if online else duration_since_last_ms,
            error=result.error,
            meta=result.meta or {},
        )

    async def _persist(self, measurement: Measurement) -> Measurement:
        try:
            return await self.store.insert(measurement)
        except StorageFailureError as e:
            logger.error(f"Storage fault, measurement kept in memory only: {e}")
            return measurement

    async def _publish(self, measurement: Measurement):
        if self.publish is None:
            return
        try:
            await self.publish("measurement", measurement_payload(measurement))
        except Exception as e:
            logger.error(f"Failed to publish measurement: {e}")

    def _resolve_waiters(self, measurement: Measurement):
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(measurement)

    async def trigger_once(self) -> Measurement:
        """Forced cycle for manual triggers.

        If a cycle is already in flight, wait for the measurement it produces.

        Raises:
            TriggerTimeoutError: if no measurement arrives within ``trigger_timeout_ms``
        """
        measurement = await self.collect(force=True)
        if measurement is not None:
            return measurement

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        timeout_ms = self.trigger_timeout_ms
        try:
            return await asyncio.wait_for(waiter, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise TriggerTimeoutError(f"No measurement within {timeout_ms} ms")
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    async def _scheduled_collect(self, force: bool = False):
        try:
            await self.collect(force=force)
        except Exception as e:
            logger.error(f"Scheduled collection failed: {e}", exc_info=True)

    async def start(self):
        """Run the first cycle immediately, then every ``interval_ms``."""
        if self.running:
            return
        self.running = True
        logger.info(f"Starting measurement collector (interval={self.interval_ms}ms)")
        await self._scheduled_collect(force=True)
        self.scheduler.add_interval_job(COLLECT_JOB_ID, self._scheduled_collect, self.interval_ms / 1000)

    def stop(self):
        if not self.running:
            return
        self.running = False
        self.scheduler.remove_job(COLLECT_JOB_ID)
        logger.info("Measurement collector stopped")
