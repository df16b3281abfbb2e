"""Tests for the analytics aggregator."""
import random
from datetime import timedelta

import pytest

from netpulse.models import Event, EventType, MeasurementStatus
from netpulse.services.analytics import (
    AnalyticsConfig,
    compute_summary,
    compute_today_stats,
    compute_uptime_periods,
    group_events_by_type,
    round2,
)

from conftest import BASE_TIME, make_measurement

ONLINE = MeasurementStatus.ONLINE
OFFLINE = MeasurementStatus.OFFLINE
DEGRADED = MeasurementStatus.DEGRADED


@pytest.mark.parametrize(
    "value, expected",
    [
        (0.125, 0.13),
        (-0.125, -0.13),
        (12.344, 12.34),
        (7, 7.0),
        ("3.456", 3.46),
        (None, None),
        (float("nan"), None),
        (float("inf"), None),
    ],
)
def test_round2(value, expected):
    assert round2(value) == expected


def test_empty_input_gives_zero_summary():
    summary = compute_summary([])

    assert summary.total_samples == 0
    assert summary.online_samples == 0
    assert summary.offline_samples == 0
    assert summary.uptime_percent is None
    assert summary.downtime.events == 0
    assert summary.downtime.duration_ms == 0
    for stats in (summary.download, summary.upload, summary.latency):
        assert stats.min is None and stats.max is None and stats.avg is None
    assert summary.speed_drops.count == 0
    assert summary.speed_drops.events == []
    assert summary.speed_drops.threshold_mbps == 15


def test_summary_does_not_depend_on_input_order():
    statuses = [ONLINE, ONLINE, OFFLINE, OFFLINE, ONLINE, DEGRADED, ONLINE, OFFLINE, ONLINE]
    downloads = [100, 90, None, None, 40, None, 95, None, 60]
    measurements = [
        make_measurement(i, status=s, download=d, latency=10 + i, estimated_downtime_ms=30_000)
        for i, (s, d) in enumerate(zip(statuses, downloads))
    ]
    shuffled = list(measurements)
    random.Random(3).shuffle(shuffled)

    assert compute_summary(shuffled) == compute_summary(measurements)


def test_unrealistic_download_is_ignored():
    measurements = [
        make_measurement(0, download=100),
        make_measurement(1, download=2000),
        make_measurement(2, download=90),
    ]
    summary = compute_summary(measurements, AnalyticsConfig(max_realistic_download_mbps=1000))

    assert summary.download.max == 100
    assert summary.download.min == 90
    assert summary.download.avg == 95
    # The outlier does not become the baseline for drop detection
    assert summary.speed_drops.count == 0


def test_non_positive_upload_is_ignored():
    measurements = [
        make_measurement(0, upload=0),
        make_measurement(1, upload=-5),
        make_measurement(2, upload=600),
        make_measurement(3, upload=25),
    ]
    summary = compute_summary(measurements)

    assert summary.upload.min == 25
    assert summary.upload.max == 25


def test_drop_meeting_mbps_threshold_is_recorded():
    summary = compute_summary([make_measurement(0, download=100), make_measurement(1, download=80)])

    assert summary.speed_drops.count == 1
    drop = summary.speed_drops.events[0]
    assert drop.previous_mbps == 100
    assert drop.current_mbps == 80
    assert drop.drop_mbps == 20
    assert drop.drop_percent == 20


def test_drop_meeting_percent_threshold_is_recorded():
    summary = compute_summary([make_measurement(0, download=100), make_measurement(1, download=60)])

    assert summary.speed_drops.count == 1
    assert summary.speed_drops.events[0].drop_percent == 40


def test_drop_below_both_thresholds_is_not_recorded():
    summary = compute_summary([make_measurement(0, download=100), make_measurement(1, download=90)])

    assert summary.speed_drops.count == 0


def test_small_absolute_drop_on_slow_link_counts_by_percent():
    summary = compute_summary([make_measurement(0, download=10), make_measurement(1, download=6)])

    assert summary.speed_drops.count == 1
    assert summary.speed_drops.events[0].drop_mbps == 4


def test_downtime_counts_contiguous_offline_runs():
    measurements = [
        make_measurement(0, status=ONLINE),
        make_measurement(1, status=OFFLINE, estimated_downtime_ms=60_000),
        make_measurement(2, status=OFFLINE, estimated_downtime_ms=61_000),
        make_measurement(3, status=ONLINE),
        make_measurement(4, status=OFFLINE, estimated_downtime_ms=59_500),
    ]
    summary = compute_summary(measurements)

    assert summary.offline_samples == 3
    assert summary.online_samples == 2
    assert summary.downtime.events == 2
    assert summary.downtime.duration_ms == 180_500
    assert summary.uptime_percent == 40


def test_downtime_proxy_falls_back_to_interval():
    measurements = [
        make_measurement(0, status=OFFLINE, estimated_downtime_ms=None, duration_since_last_ms=45_000),
        make_measurement(1, status=OFFLINE, estimated_downtime_ms=None, duration_since_last_ms=None),
    ]
    summary = compute_summary(measurements, AnalyticsConfig(fallback_interval_ms=30_000))

    assert summary.downtime.events == 1
    assert summary.downtime.duration_ms == 75_000


def test_speed_drops_are_capped():
    measurements = [
        make_measurement(i, download=100 if i % 2 == 0 else 50)
        for i in range(100)
    ]
    summary = compute_summary(measurements)

    assert summary.speed_drops.count == 50
    assert len(summary.speed_drops.events) == 50

    longer = [make_measurement(i, download=100 if i % 2 == 0 else 50) for i in range(300)]
    assert compute_summary(longer).speed_drops.count == 50


def test_degraded_sample_counts_as_downtime():
    measurements = [
        make_measurement(0, status=ONLINE),
        make_measurement(1, status=DEGRADED, download=None, upload=None, latency=None,
                         estimated_downtime_ms=60_000),
    ]
    summary = compute_summary(measurements)

    assert summary.degraded_samples == 1
    assert summary.offline_samples == 1
    assert summary.online_samples == 1
    assert summary.uptime_percent == 50
    assert summary.downtime.events == 1
    assert summary.downtime.duration_ms == 60_000
    assert len(compute_uptime_periods(measurements)) == 1


def test_degraded_and_offline_rows_share_downtime_runs():
    measurements = [
        make_measurement(0, status=ONLINE),
        make_measurement(1, status=DEGRADED, estimated_downtime_ms=60_000),
        make_measurement(2, status=OFFLINE, estimated_downtime_ms=61_000),
        make_measurement(3, status=ONLINE, download=90),
        make_measurement(4, status=DEGRADED, estimated_downtime_ms=30_000),
    ]
    summary = compute_summary(measurements)

    assert summary.offline_samples == 3
    assert summary.degraded_samples == 2
    assert summary.online_samples == 2
    assert summary.uptime_percent == 40
    assert summary.downtime.events == 2
    assert summary.downtime.duration_ms == 151_000
    # Degraded rows carry no trusted speed data
    assert summary.download.min == 90
    assert summary.download.max == 100


def test_offline_run_uses_last_online_download_as_baseline():
    measurements = [
        make_measurement(0, download=100),
        make_measurement(1, status=OFFLINE, estimated_downtime_ms=60_000),
        make_measurement(2, download=50),
    ]
    summary = compute_summary(measurements)

    assert summary.speed_drops.count == 1
    assert summary.speed_drops.events[0].previous_mbps == 100


def test_latency_stats():
    measurements = [
        make_measurement(0, latency=10),
        make_measurement(1, latency=20),
        make_measurement(2, latency=None),
        make_measurement(3, latency=float("nan")),
        make_measurement(4, latency=25),
    ]
    summary = compute_summary(measurements)

    assert summary.latency.min == 10
    assert summary.latency.max == 25
    assert summary.latency.avg == 18.33


def test_today_stats_only_count_the_current_day():
    yesterday = make_measurement(-13 * 60, status=OFFLINE, estimated_downtime_ms=60_000)
    measurements = [
        yesterday,
        make_measurement(0, status=ONLINE),
        make_measurement(1, status=OFFLINE, estimated_downtime_ms=60_000),
        make_measurement(2, status=ONLINE),
        make_measurement(3, status=OFFLINE, estimated_downtime_ms=30_000),
    ]
    now = BASE_TIME + timedelta(minutes=10)
    stats = compute_today_stats(measurements, now)

    assert stats.date == BASE_TIME.replace(hour=0)
    assert stats.disconnection_events == 2
    assert stats.offline_samples == 2
    assert stats.total_downtime_ms == 90_000
    assert stats.uptime_percent == 50


def test_uptime_periods():
    statuses = [ONLINE, DEGRADED, OFFLINE, OFFLINE, ONLINE, ONLINE, OFFLINE, ONLINE]
    measurements = [make_measurement(i, status=s) for i, s in enumerate(statuses)]
    periods = compute_uptime_periods(measurements)

    assert [(p.start, p.end) for p in periods] == [
        (BASE_TIME, BASE_TIME),
        (BASE_TIME + timedelta(minutes=4), BASE_TIME + timedelta(minutes=5)),
        (BASE_TIME + timedelta(minutes=7), BASE_TIME + timedelta(minutes=7)),
    ]


def test_group_events_by_type():
    events = [
        Event.create(EventType.CONNECTION_LOST, BASE_TIME, {}),
        Event.create(EventType.CONNECTION_RESTORED, BASE_TIME, {}),
        Event.create(EventType.CONNECTION_LOST, BASE_TIME, {}),
    ]
    grouped = group_events_by_type(events)

    assert len(grouped[EventType.CONNECTION_LOST]) == 2
    assert len(grouped[EventType.CONNECTION_RESTORED]) == 1
    assert EventType.SPEED_IMPROVED not in grouped
