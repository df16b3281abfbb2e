"""Shared fixtures and in-memory fakes for the pipeline tests."""
import asyncio
import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

import pytest

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from netpulse.config import Settings  # noqa: E402
from netpulse.database import close_db, create_engine, create_session_factory, init_db  # noqa: E402
from netpulse.errors import StorageFailureError  # noqa: E402
from netpulse.models import Measurement, MeasurementStatus  # noqa: E402
from netpulse.services.probe import ProbeResult  # noqa: E402

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0)


def make_measurement(
    minute: float = 0,
    status: str = MeasurementStatus.ONLINE,
    download: Optional[float] = 100.0,
    upload: Optional[float] = 20.0,
    latency: Optional[float] = 15.0,
    estimated_downtime_ms: Optional[int] = None,
    duration_since_last_ms: Optional[int] = 60_000,
) -> Measurement:
    """Transient Measurement ``minute`` minutes after BASE_TIME."""
    online = status != MeasurementStatus.OFFLINE
    return Measurement(
        timestamp=BASE_TIME + timedelta(minutes=minute),
        status=status,
        download_mbps=download if online else None,
        upload_mbps=upload if online else None,
        latency_ms=latency if online else None,
        duration_since_last_ms=duration_since_last_ms,
        estimated_downtime_ms=estimated_downtime_ms,
        meta={},
    )


def online_result(download: float = 100.0, upload: float = 20.0) -> ProbeResult:
    return ProbeResult(
        status=MeasurementStatus.ONLINE,
        download_mbps=download,
        upload_mbps=upload,
        latency_ms=12.5,
        meta={"source": "fake"},
    )


def offline_result() -> ProbeResult:
    return ProbeResult(
        status=MeasurementStatus.OFFLINE,
        error={"message": "unreachable", "code": "NO_CONNECTIVITY"},
        meta={"source": "fake"},
    )


class FakeProbe:
    """Returns queued results; repeats the last one when the queue runs dry.

    With ``gated=True`` each call blocks until ``release()``.
    """

    def __init__(self, *results: ProbeResult, gated: bool = False):
        self.results: List[ProbeResult] = list(results) or [online_result()]
        self.calls = 0
        self.started = asyncio.Event() if gated else None
        self._gate = asyncio.Event() if gated else None

    def release(self):
        self._gate.set()

    async def measure(self) -> ProbeResult:
        self.calls += 1
        if self._gate is not None:
            self.started.set()
            await self._gate.wait()
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class RaisingProbe:
    async def measure(self) -> ProbeResult:
        raise RuntimeError("probe exploded")


class FakeMeasurementStore:
    def __init__(self, fail: bool = False, last_state=None):
        self.items: List[Measurement] = []
        self.fail = fail
        self.last_state = last_state

    async def insert(self, measurement):
        if self.fail:
            raise StorageFailureError("disk full")
        measurement.id = len(self.items) + 1
        self.items.append(measurement)
        return measurement

    async def get_last_known_state(self):
        return self.last_state


class FakeEventStore:
    def __init__(self, fail: bool = False):
        self.items = []
        self.fail = fail

    async def insert(self, event):
        if self.fail:
            raise StorageFailureError("disk full")
        self.items.append(event)
        return event


class FakeScheduler:
    def __init__(self):
        self.jobs = {}
        self.running = False

    def start(self):
        self.running = True

    def stop(self):
        self.running = False

    def add_interval_job(self, job_id, func, seconds):
        self.jobs[job_id] = (func, seconds)

    def remove_job(self, job_id):
        self.jobs.pop(job_id, None)


class RecordingPublisher:
    def __init__(self, fail: bool = False):
        self.messages = []
        self.fail = fail

    async def __call__(self, topic, payload):
        if self.fail:
            raise ConnectionError("channel closed")
        self.messages.append((topic, payload))

    def topics(self):
        return [topic for topic, _ in self.messages]


@asynccontextmanager
async def sqlite_session_factory(data_path):
    """Fresh SQLite database under ``data_path``; yields a session factory."""
    settings = Settings(data_path=str(data_path))
    engine = create_engine(settings)
    await init_db(engine, settings)
    try:
        yield create_session_factory(engine)
    finally:
        await close_db(engine)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of Settings."""
    for key in list(os.environ):
        if key.lower() in Settings.model_fields:
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_path=str(tmp_path),
        simulation_mode=True,
        simulation_seed=7,
        monitor_interval_ms=60_000,
    )
