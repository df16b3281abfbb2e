"""Measurement model - one probe outcome per collection cycle."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String

from ..database import Base
from ..utils.time_utils import utcnow


class MeasurementStatus:
    """Allowed values for ``Measurement.status``."""

    ONLINE = "online"
    OFFLINE = "offline"
    # Connectivity confirmed but every speed test attempt failed
    DEGRADED = "degraded"

    ALL = (ONLINE, OFFLINE, DEGRADED)


class Measurement(Base):
    """Result of one collection cycle."""

    __tablename__ = "measurements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    status = Column(String, nullable=False)  # online, offline, degraded
    download_mbps = Column(Float, nullable=True)  # NULL = not measured this cycle
    upload_mbps = Column(Float, nullable=True)
    latency_ms = Column(Float, nullable=True)
    jitter_ms = Column(Float, nullable=True)
    packet_loss_percent = Column(Float, nullable=True)
    duration_since_last_ms = Column(Integer, nullable=True)
    estimated_downtime_ms = Column(Integer, nullable=True)  # Set only when not online
    error = Column(JSON, nullable=True)  # {"message": ..., "code": ...}
    meta = Column(JSON, nullable=True)  # Probe source, attempts, simulation flag

    def is_online(self) -> bool:
        return self.status == MeasurementStatus.ONLINE

    def __repr__(self) -> str:
        return (
            f"<Measurement id={self.id} {self.timestamp} {self.status} "
            f"down={self.download_mbps} up={self.upload_mbps}>"
        )


@dataclass(frozen=True)
class PreviousState:
    """Snapshot of the last measurement seen by the event detector."""
    status: str
    download_mbps: Optional[float]
    timestamp: datetime

    @classmethod
    def from_measurement(cls, measurement: Measurement) -> "PreviousState":
        return cls(
            status=measurement.status,
            download_mbps=measurement.download_mbps,
            timestamp=measurement.timestamp,
        )
