"""API tests - the whole app with a scripted probe and a temporary SQLite database."""
from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient

from netpulse.errors import TriggerTimeoutError
from netpulse.main import create_app
from netpulse.models import EventType

from conftest import FakeProbe, offline_result, online_result


@contextmanager
def api_client(settings, probe):
    with TestClient(create_app(settings, probe=probe)) as client:
        yield client


def test_health(settings):
    with api_client(settings, FakeProbe()) as client:
        response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["collector_running"] is True
    assert payload["in_flight"] is False
    assert payload["scheduler_running"] is True
    assert payload["websocket_clients"] == 0


def test_config_is_read_only_view(settings):
    with api_client(settings, FakeProbe()) as client:
        payload = client.get("/api/config").json()

    assert payload["monitor_interval_ms"] == 60_000
    assert payload["simulation_mode"] is True
    assert payload["speed_drop_threshold_mbps"] == 15
    assert payload["database"] == "sqlite"


def test_startup_collects_first_measurement(settings):
    with api_client(settings, FakeProbe(online_result(download=91.25))) as client:
        latest = client.get("/api/metrics/latest").json()
        recent = client.get("/api/metrics/recent", params={"limit": 10}).json()

    assert latest["status"] == "online"
    assert latest["download_mbps"] == 91.25
    assert latest["id"] is not None
    assert len(recent) == 1


def test_recent_limit_is_validated(settings):
    with api_client(settings, FakeProbe()) as client:
        response = client.get("/api/metrics/recent", params={"limit": 0})

    assert response.status_code == 422


def test_trigger_records_measurement_and_events(settings):
    probe = FakeProbe(online_result(download=100), offline_result(), online_result(download=100))
    with api_client(settings, probe) as client:
        lost = client.post("/api/monitor/trigger")
        restored = client.post("/api/monitor/trigger")
        events = client.get("/api/events/recent").json()
        only_lost = client.get("/api/events", params={"type": EventType.CONNECTION_LOST}).json()

    assert lost.status_code == 202
    assert lost.json()["measurement"]["status"] == "offline"
    assert lost.json()["measurement"]["error"]["code"] == "NO_CONNECTIVITY"
    assert restored.json()["measurement"]["status"] == "online"

    assert [e["type"] for e in events] == [EventType.CONNECTION_RESTORED, EventType.CONNECTION_LOST]
    assert events[1]["metadata"]["previous_download_mbps"] == 100
    assert len(only_lost) == 1


def test_unknown_event_type_is_rejected(settings):
    with api_client(settings, FakeProbe()) as client:
        response = client.get("/api/events", params={"type": "bogus"})

    assert response.status_code == 400


def test_trigger_timeout_is_504(settings, monkeypatch):
    with api_client(settings, FakeProbe()) as client:
        pipeline = client.app.state.pipeline

        async def timeout():
            raise TriggerTimeoutError("No measurement within 1 ms")

        monkeypatch.setattr(pipeline, "trigger_measurement", timeout)
        response = client.post("/api/monitor/trigger")

    assert response.status_code == 504
    assert response.json()["detail"]["code"] == "TRIGGER_TIMEOUT"


def test_report_and_statistics(settings):
    probe = FakeProbe(online_result(download=100), online_result(download=60), offline_result())
    with api_client(settings, probe) as client:
        client.post("/api/monitor/trigger")
        client.post("/api/monitor/trigger")
        report = client.get("/api/reports").json()
        stats = client.get("/api/statistics/detailed").json()
        today = client.get("/api/metrics/today").json()

    summary = report["summary"]
    assert summary["total_samples"] == 3
    assert summary["offline_samples"] == 1
    assert summary["uptime_percent"] == pytest.approx(66.67)
    assert summary["speed_drops"]["count"] == 1
    assert summary["speed_drops"]["events"][0]["drop_mbps"] == 40
    assert len(report["records"]) == 3

    assert stats["summary"]["total_samples"] == 3
    assert set(stats["events_by_type"]) == {EventType.SPEED_DEGRADATION, EventType.CONNECTION_LOST}
    assert len(stats["uptime_periods"]) == 1
    assert stats["database"]["measurements"] == 3

    assert today["disconnection_events"] == 1


def test_report_rejects_inverted_range(settings):
    with api_client(settings, FakeProbe()) as client:
        response = client.get(
            "/api/reports",
            params={"from": "2024-03-02T00:00:00", "to": "2024-03-01T00:00:00"},
        )

    assert response.status_code == 400


def test_report_accepts_mixed_aware_and_naive_range(settings):
    with api_client(settings, FakeProbe()) as client:
        ok = client.get(
            "/api/reports",
            params={"from": "2024-03-01T00:00:00Z", "to": "2024-03-02T00:00:00"},
        )
        inverted = client.get(
            "/api/statistics/detailed",
            params={"from": "2024-03-02T01:00:00+02:00", "to": "2024-03-01T22:00:00"},
        )

    assert ok.status_code == 200
    assert inverted.status_code == 400


def test_database_stats_and_cleanup(settings):
    with api_client(settings, FakeProbe()) as client:
        client.post("/api/monitor/trigger")
        before = client.get("/api/database/stats").json()
        cleanup = client.post("/api/database/cleanup", params={"older_than_hours": 0}).json()
        after = client.get("/api/database/stats").json()

    assert before["measurements"] == 2
    assert before["retention_hours"] == 168
    assert cleanup["deleted_measurements"] == 2
    assert after["measurements"] == 0


def test_websocket_receives_measurements(settings):
    with api_client(settings, FakeProbe(online_result(download=77))) as client:
        with client.websocket_connect("/ws") as websocket:
            assert websocket.receive_json()["type"] == "connected"
            client.post("/api/monitor/trigger")
            message = websocket.receive_json()

    assert message["type"] == "measurement"
    assert message["data"]["download_mbps"] == 77
