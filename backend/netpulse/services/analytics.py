"""Analytics service - reduces a window of measurements into summary statistics.

Everything here is a pure function of its input: no I/O, no shared state. The
caller fetches the measurement window (usually a date range from the store) and
passes it in; ordering of the input does not matter because it is sorted first.

Reported floats go through ``round2`` (two decimals, half away from zero).
``None`` and NaN stay ``None``.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models.measurement import MeasurementStatus


@dataclass(frozen=True)
class AnalyticsConfig:
    """Thresholds and limits used by ``compute_summary``."""
    drop_threshold_mbps: float = 15
    drop_percent: float = 30
    fallback_interval_ms: int = 60_000
    max_speed_drop_events: int = 50
    max_realistic_download_mbps: float = 1000
    max_realistic_upload_mbps: float = 500


@dataclass
class MetricStats:
    min: Optional[float] = None
    max: Optional[float] = None
    avg: Optional[float] = None


@dataclass
class Downtime:
    events: int = 0  # Contiguous non-online runs, not samples
    duration_ms: int = 0


@dataclass
class SpeedDrop:
    timestamp: datetime
    previous_mbps: Optional[float]
    current_mbps: Optional[float]
    drop_mbps: Optional[float]
    drop_percent: Optional[float]


@dataclass
class SpeedDrops:
    count: int = 0
    events: List[SpeedDrop] = field(default_factory=list)
    threshold_mbps: Optional[float] = None
    threshold_percent: Optional[float] = None


@dataclass
class Summary:
    """Statistics for a window of measurements. Computed on demand, never stored."""
    total_samples: int = 0
    online_samples: int = 0
    offline_samples: int = 0
    degraded_samples: int = 0
    uptime_percent: Optional[float] = None
    downtime: Downtime = field(default_factory=Downtime)
    download: MetricStats = field(default_factory=MetricStats)
    upload: MetricStats = field(default_factory=MetricStats)
    latency: MetricStats = field(default_factory=MetricStats)
    speed_drops: SpeedDrops = field(default_factory=SpeedDrops)


@dataclass
class TodayStats:
    disconnection_events: int
    offline_samples: int
    total_downtime_ms: int
    uptime_percent: Optional[float]
    date: datetime


@dataclass
class UptimePeriod:
    start: datetime
    end: datetime


def round2(value: Any) -> Optional[float]:
    """Round to two decimals, half away from zero on the scaled integer."""
    number = _to_float(value)
    if number is None:
        return None
    scaled = math.floor(abs(number) * 100 + 0.5)
    return math.copysign(scaled, number) / 100


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _is_realistic(value: Optional[float], ceiling: float) -> bool:
    return value is not None and 0 < value <= ceiling


class _RunningStats:
    """Running min/max/sum/count for one metric."""

    def __init__(self):
        self.count = 0
        self.total = 0.0
        self.min: Optional[float] = None
        self.max: Optional[float] = None

    def add(self, value: float):
        self.count += 1
        self.total += value
        self.min = value if self.min is None else min(self.min, value)
        self.max = value if self.max is None else max(self.max, value)

    def result(self) -> MetricStats:
        if not self.count:
            return MetricStats()
        return MetricStats(
            min=round2(self.min),
            max=round2(self.max),
            avg=round2(self.total / self.count),
        )


def _downtime_proxy_ms(measurement, fallback_ms: int) -> float:
    for candidate in (measurement.estimated_downtime_ms, measurement.duration_since_last_ms):
        number = _to_float(candidate)
        if number:
            return number
    return fallback_ms


def sort_by_timestamp(measurements: Iterable) -> list:
    """Ascending copy of the input; the input itself is left untouched."""
    return sorted(measurements, key=lambda m: m.timestamp)


def compute_summary(measurements: Sequence, config: Optional[AnalyticsConfig] = None) -> Summary:
    """Reduce a window of measurements into a Summary.

    Every sample that is not online (offline or degraded) adds its downtime proxy
    (estimated downtime, else time since the previous cycle, else the configured
    interval) and counts one downtime event per contiguous run. Degraded samples
    are also tallied in ``degraded_samples``.

    Download and upload are accepted only when finite, positive and within the
    realism ceiling. Each accepted download is compared with the previous accepted
    one; a drop meeting either threshold is recorded until ``max_speed_drop_events``
    entries exist, after which further drops are not recorded.
    """
    config = config or AnalyticsConfig()
    if not measurements:
        return Summary(
            speed_drops=SpeedDrops(
                threshold_mbps=config.drop_threshold_mbps,
                threshold_percent=config.drop_percent,
            )
        )

    download = _RunningStats()
    upload = _RunningStats()
    latency = _RunningStats()

    offline_samples = 0
    degraded_samples = 0
    offline_events = 0
    total_downtime_ms = 0.0
    previous_was_offline = False
    last_online_download: Optional[float] = None
    drops: List[SpeedDrop] = []

    for measurement in sort_by_timestamp(measurements):
        if not measurement.is_online():
            offline_samples += 1
            if measurement.status == MeasurementStatus.DEGRADED:
                degraded_samples += 1
            total_downtime_ms += _downtime_proxy_ms(measurement, config.fallback_interval_ms)
            if not previous_was_offline:
                offline_events += 1
            previous_was_offline = True
            continue

        previous_was_offline = False

        current = _to_float(measurement.download_mbps)
        if _is_realistic(current, config.max_realistic_download_mbps):
            download.add(current)
            if last_online_download is not None:
                drop_mbps = last_online_download - current
                drop_percent = (drop_mbps / last_online_download) * 100
                if drop_mbps >= config.drop_threshold_mbps or drop_percent >= config.drop_percent:
                    if len(drops) < config.max_speed_drop_events:
                        drops.append(SpeedDrop(
                            timestamp=measurement.timestamp,
                            previous_mbps=round2(last_online_download),
                            current_mbps=round2(current),
                            drop_mbps=round2(drop_mbps),
                            drop_percent=round2(drop_percent),
                        ))
            last_online_download = current

        up = _to_float(measurement.upload_mbps)
        if _is_realistic(up, config.max_realistic_upload_mbps):
            upload.add(up)

        lat = _to_float(measurement.latency_ms)
        if lat is not None:
            latency.add(lat)

    total_samples = len(measurements)
    online_samples = total_samples - offline_samples

    return Summary(
        total_samples=total_samples,
        online_samples=online_samples,
        offline_samples=offline_samples,
        degraded_samples=degraded_samples,
        uptime_percent=round2(online_samples / total_samples * 100),
        downtime=Downtime(events=offline_events, duration_ms=int(math.floor(total_downtime_ms + 0.5))),
        download=download.result(),
        upload=upload.result(),
        latency=latency.result(),
        speed_drops=SpeedDrops(
            count=len(drops),
            events=drops,
            threshold_mbps=config.drop_threshold_mbps,
            threshold_percent=config.drop_percent,
        ),
    )


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def compute_today_stats(
    measurements: Sequence,
    now: datetime,
    config: Optional[AnalyticsConfig] = None,
) -> TodayStats:
    """Disconnection figures for the day containing ``now``."""
    day_start = start_of_day(now)
    day_end = day_start + timedelta(days=1)
    today = [m for m in measurements if day_start <= m.timestamp < day_end]
    summary = compute_summary(today, config)
    return TodayStats(
        disconnection_events=summary.downtime.events,
        offline_samples=summary.offline_samples,
        total_downtime_ms=summary.downtime.duration_ms,
        uptime_percent=summary.uptime_percent,
        date=day_start,
    )


def compute_uptime_periods(measurements: Sequence) -> List[UptimePeriod]:
    """Maximal runs of consecutive online measurements."""
    periods: List[UptimePeriod] = []
    current: Optional[UptimePeriod] = None

    for measurement in sort_by_timestamp(measurements):
        if measurement.is_online():
            if current is None:
                current = UptimePeriod(start=measurement.timestamp, end=measurement.timestamp)
            else:
                current.end = measurement.timestamp
        elif current is not None:
            periods.append(current)
            current = None

    if current is not None:
        periods.append(current)
    return periods


def group_events_by_type(events: Iterable) -> Dict[str, list]:
    grouped: Dict[str, list] = {}
    for event in events:
        grouped.setdefault(event.type, []).append(event)
    return grouped
