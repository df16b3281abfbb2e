"""Analytics schemas for reports and dashboard statistics."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from .event import EventResponse
from .measurement import MeasurementResponse


class MetricStatsResponse(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    avg: Optional[float] = None

    class Config:
        from_attributes = True


class DowntimeResponse(BaseModel):
    events: int  # Contiguous offline runs
    duration_ms: int

    class Config:
        from_attributes = True


class SpeedDropResponse(BaseModel):
    timestamp: datetime
    previous_mbps: Optional[float] = None
    current_mbps: Optional[float] = None
    drop_mbps: Optional[float] = None
    drop_percent: Optional[float] = None

    class Config:
        from_attributes = True


class SpeedDropsResponse(BaseModel):
    count: int
    events: List[SpeedDropResponse]
    threshold_mbps: Optional[float] = None
    threshold_percent: Optional[float] = None

    class Config:
        from_attributes = True


class SummaryResponse(BaseModel):
    """Statistics for a window of measurements."""
    total_samples: int
    online_samples: int
    offline_samples: int
    degraded_samples: int
    uptime_percent: Optional[float] = None
    downtime: DowntimeResponse
    download: MetricStatsResponse
    upload: MetricStatsResponse
    latency: MetricStatsResponse
    speed_drops: SpeedDropsResponse

    class Config:
        from_attributes = True


class ReportResponse(BaseModel):
    """Summary plus the raw records of a window."""
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    summary: SummaryResponse
    records: List[MeasurementResponse]

    class Config:
        from_attributes = True


class TodayStatsResponse(BaseModel):
    """Disconnection figures for the current day."""
    date: datetime
    disconnection_events: int
    offline_samples: int
    total_downtime_ms: int
    uptime_percent: Optional[float] = None

    class Config:
        from_attributes = True


class UptimePeriodResponse(BaseModel):
    start: datetime
    end: datetime

    class Config:
        from_attributes = True


class DatabaseStats(BaseModel):
    measurements: int
    events: int
    oldest_measurement: Optional[datetime] = None
    newest_measurement: Optional[datetime] = None
    retention_hours: int


class DetailedStatisticsResponse(BaseModel):
    """Dashboard statistics for a window (default: last 24 hours)."""
    period_start: datetime
    period_end: datetime
    summary: SummaryResponse
    events_by_type: Dict[str, List[EventResponse]]
    uptime_periods: List[UptimePeriodResponse]
    database: DatabaseStats

    class Config:
        from_attributes = True


class CleanupResponse(BaseModel):
    cutoff: datetime
    deleted_measurements: int
    deleted_events: int


class ConfigResponse(BaseModel):
    """Read-only view of the running configuration."""
    monitor_interval_ms: int
    simulation_mode: bool
    speed_drop_threshold_mbps: float
    speed_drop_percent: float
    speed_improve_threshold_mbps: float
    speed_improve_percent: float
    network_test_max_retries: int
    network_test_retry_delay_ms: int
    network_test_timeout_ms: int
    connectivity_timeout_ms: int
    max_realistic_download_mbps: float
    max_realistic_upload_mbps: float
    retention_hours: int
    database: str  # sqlite or postgresql
