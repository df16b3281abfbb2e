"""Event detector - classifies consecutive measurements into events.

Transitions considered (previous -> current):

    online  -> offline   connection-lost
    offline -> online    connection-restored
    online  -> online    speed-degradation / speed-improved, when both downloads
                         are known and the change meets either threshold

Anything involving a degraded measurement emits nothing. The previous state is
replaced by every analyzed measurement, whatever it emitted.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from ..errors import StorageFailureError
from ..models import Event, EventType, Measurement, MeasurementStatus, PreviousState
from .analytics import round2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectorThresholds:
    drop_threshold_mbps: float = 15
    drop_percent: float = 30
    improve_threshold_mbps: float = 15
    improve_percent: float = 30

    @classmethod
    def from_settings(cls, settings) -> "DetectorThresholds":
        return cls(
            drop_threshold_mbps=settings.speed_drop_threshold_mbps,
            drop_percent=settings.speed_drop_percent,
            improve_threshold_mbps=settings.speed_improve_threshold_mbps,
            improve_percent=settings.speed_improve_percent,
        )


def event_payload(event: Event) -> dict:
    """Plain dict form of an event for the publish channel."""
    return {
        "id": event.id,
        "type": event.type,
        "timestamp": event.timestamp.isoformat() if event.timestamp else None,
        "metadata": event.details or {},
    }


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class EventDetector:
    """Holds the last seen state and turns each new measurement into events."""

    def __init__(
        self,
        event_store,
        measurement_store=None,
        publish: Optional[Callable[[str, object], Awaitable[None]]] = None,
        thresholds: Optional[DetectorThresholds] = None,
    ):
        self.event_store = event_store
        self.measurement_store = measurement_store
        self.publish = publish
        self.thresholds = thresholds or DetectorThresholds()
        self.previous_state: Optional[PreviousState] = None

    async def init(self):
        """Rehydrate the previous state from the newest stored measurement."""
        if self.measurement_store is None:
            return
        try:
            self.previous_state = await self.measurement_store.get_last_known_state()
        except StorageFailureError as e:
            logger.error(f"Could not load last known state: {e}")
            return
        if self.previous_state:
            logger.info(
                "Event detector resumed from %s at %s",
                self.previous_state.status,
                self.previous_state.timestamp,
            )

    def detect(self, measurement: Measurement) -> List[Event]:
        """Events for ``measurement`` against the current previous state. No side effects."""
        previous = self.previous_state
        if previous is None:
            return []

        events: List[Event] = []
        prev_status = previous.status
        curr_status = measurement.status

        if prev_status == MeasurementStatus.ONLINE and curr_status == MeasurementStatus.OFFLINE:
            events.append(Event.create(
                EventType.CONNECTION_LOST,
                measurement.timestamp,
                {
                    "previous_download_mbps": round2(previous.download_mbps),
                    "last_online_timestamp": _iso(previous.timestamp),
                },
            ))
        elif prev_status == MeasurementStatus.OFFLINE and curr_status == MeasurementStatus.ONLINE:
            events.append(Event.create(
                EventType.CONNECTION_RESTORED,
                measurement.timestamp,
                {
                    "current_download_mbps": round2(measurement.download_mbps),
                    "last_offline_timestamp": _iso(previous.timestamp),
                },
            ))
        elif prev_status == MeasurementStatus.ONLINE and curr_status == MeasurementStatus.ONLINE:
            events.extend(self._speed_events(previous, measurement))

        return events

    def _speed_events(self, previous: PreviousState, measurement: Measurement) -> List[Event]:
        before = previous.download_mbps
        after = measurement.download_mbps
        if before is None or after is None or before <= 0:
            return []

        t = self.thresholds
        change = after - before
        change_percent = change / before * 100

        if change < 0:
            drop = -change
            drop_percent = -change_percent
            if drop >= t.drop_threshold_mbps or drop_percent >= t.drop_percent:
                return [Event.create(
                    EventType.SPEED_DEGRADATION,
                    measurement.timestamp,
                    {
                        "previous_mbps": round2(before),
                        "current_mbps": round2(after),
                        "drop_mbps": round2(drop),
                        "drop_percent": round2(drop_percent),
                    },
                )]
        elif change > 0:
            if change >= t.improve_threshold_mbps or change_percent >= t.improve_percent:
                return [Event.create(
                    EventType.SPEED_IMPROVED,
                    measurement.timestamp,
                    {
                        "previous_mbps": round2(before),
                        "current_mbps": round2(after),
                        "improve_mbps": round2(change),
                        "improve_percent": round2(change_percent),
                    },
                )]
        return []

    async def analyze(self, measurement: Measurement) -> List[Event]:
        """Detect, persist and publish the events for one new measurement."""
        events = self.detect(measurement)
        self.previous_state = PreviousState.from_measurement(measurement)

        for event in events:
            logger.info(f"Event detected: {event.type} at {event.timestamp}")
            try:
                await self.event_store.insert(event)
            except StorageFailureError as e:
                logger.error(f"Storage fault, event {event.id} not persisted: {e}")
            if self.publish is not None:
                try:
                    await self.publish("event", event_payload(event))
                except Exception as e:
                    logger.error(f"Failed to publish event: {e}")
        return events
