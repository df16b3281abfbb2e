"""Probe strategies - perform one network measurement attempt.

A probe returns a ``ProbeResult`` for every cycle, never raises for network
trouble. Failures inside an attempt are absorbed by the retry loop and end up as
an offline or degraded result carrying an error code.
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx

from ..errors import NoConnectivityError, SpeedTestFailedError, UnrealisticReadingError
from ..models.measurement import MeasurementStatus
from .analytics import round2

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    """Raw outcome of one probe cycle, before it becomes a Measurement."""
    status: str  # online, offline, degraded
    download_mbps: Optional[float] = None
    upload_mbps: Optional[float] = None
    latency_ms: Optional[float] = None
    jitter_ms: Optional[float] = None
    packet_loss_percent: Optional[float] = None
    error: Optional[Dict[str, Any]] = None
    meta: Dict[str, Any] = field(default_factory=dict)


class Probe(Protocol):
    """Interface shared by the real and simulated probes."""

    async def measure(self) -> ProbeResult:
        """Run one full probe cycle."""
        ...


def validate_reading(metric: str, value: Optional[float], ceiling: float) -> float:
    """Return the rounded reading or raise if it is not plausible."""
    rounded = round2(value)
    if rounded is None or rounded <= 0 or rounded > ceiling:
        raise UnrealisticReadingError(metric, value, ceiling)
    return rounded


def _mbps(num_bytes: int, elapsed_seconds: float) -> float:
    return (num_bytes * 8) / elapsed_seconds / 1_000_000


class NetworkSpeedProbe:
    """Measures the real link: connectivity check, then download and upload tests."""

    SOURCE = "network-speed"

    def __init__(
        self,
        connectivity_url: str = "https://www.google.com",
        download_url: str = "https://httpbin.org/stream-bytes/{size}",
        upload_url: str = "https://httpbin.org/post",
        file_size_bytes: int = 20_000_000,
        upload_size_bytes: int = 5_000_000,
        max_retries: int = 3,
        retry_delay_ms: int = 1000,
        timeout_ms: int = 30_000,
        connectivity_timeout_ms: int = 5000,
        max_realistic_download_mbps: float = 1000,
        max_realistic_upload_mbps: float = 500,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.connectivity_url = connectivity_url
        self.download_url = download_url.format(size=file_size_bytes)
        self.upload_url = upload_url
        self.file_size_bytes = file_size_bytes
        self.upload_size_bytes = upload_size_bytes
        self.max_retries = max(1, max_retries)
        self.retry_delay_ms = retry_delay_ms
        self.timeout_ms = timeout_ms
        self.connectivity_timeout_ms = connectivity_timeout_ms
        self.max_realistic_download_mbps = max_realistic_download_mbps
        self.max_realistic_upload_mbps = max_realistic_upload_mbps
        # Injected in tests to avoid real network traffic
        self._transport = transport

    def _client(self, timeout_ms: int) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout_ms / 1000,
            follow_redirects=True,
            transport=self._transport,
        )

    async def check_connectivity(self) -> float:
        """Lightweight reachability request.

        Returns the round-trip time in ms. Any status below 500 counts as
        reachable: the point is that packets made it there and back.

        Raises:
            NoConnectivityError: on timeout, connection error, or 5xx
        """
        try:
            start = time.perf_counter()
            async with self._client(self.connectivity_timeout_ms) as client:
                response = await client.get(self.connectivity_url)
            elapsed_ms = (time.perf_counter() - start) * 1000
        except httpx.TimeoutException as e:
            raise NoConnectivityError(f"Connectivity check timed out: {e}")
        except httpx.HTTPError as e:
            raise NoConnectivityError(f"Connectivity check failed: {e}")

        if not (200 <= response.status_code < 500):
            raise NoConnectivityError(f"Connectivity check returned HTTP {response.status_code}")
        return elapsed_ms

    async def measure_download(self) -> float:
        """Stream the test file and return throughput in Mbps."""
        received = 0
        async with self._client(self.timeout_ms) as client:
            start = time.perf_counter()
            async with client.stream("GET", self.download_url) as response:
                if response.status_code >= 400:
                    raise SpeedTestFailedError(f"Download test returned HTTP {response.status_code}")
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
            elapsed = time.perf_counter() - start

        if received == 0 or elapsed <= 0:
            raise SpeedTestFailedError("Download test received no data")
        return validate_reading("download", _mbps(received, elapsed), self.max_realistic_download_mbps)

    async def measure_upload(self) -> float:
        """POST the upload payload and return throughput in Mbps."""
        payload = b"0" * self.upload_size_bytes
        async with self._client(self.timeout_ms) as client:
            start = time.perf_counter()
            response = await client.post(
                self.upload_url,
                content=payload,
                headers={"Content-Type": "application/octet-stream"},
            )
            elapsed = time.perf_counter() - start

        if response.status_code >= 400:
            raise SpeedTestFailedError(f"Upload test returned HTTP {response.status_code}")
        if elapsed <= 0:
            raise SpeedTestFailedError("Upload test finished instantly")
        return validate_reading("upload", _mbps(len(payload), elapsed), self.max_realistic_upload_mbps)

    def _offline(self, error: NoConnectivityError, attempts: int) -> ProbeResult:
        return ProbeResult(
            status=MeasurementStatus.OFFLINE,
            error=error.to_dict(),
            meta={"source": self.SOURCE, "attempts": attempts},
        )

    async def measure(self) -> ProbeResult:
        """Connectivity pre-check, then download with retries, then best-effort upload."""
        try:
            latency_ms = await self.check_connectivity()
        except NoConnectivityError as e:
            logger.warning("No connectivity detected: %s", e)
            return self._offline(e, attempts=0)

        last_error: Optional[SpeedTestFailedError] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                download_mbps = await self.measure_download()
            except SpeedTestFailedError as e:
                last_error = e
            except httpx.HTTPError as e:
                last_error = SpeedTestFailedError(f"Download test error: {e}")
            else:
                last_error = None

            if last_error is not None:
                logger.warning("Speed test attempt %d/%d failed: %s", attempt, self.max_retries, last_error)
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay_ms / 1000)
                continue

            upload_mbps = None
            try:
                upload_mbps = await self.measure_upload()
            except (SpeedTestFailedError, httpx.HTTPError) as e:
                logger.warning("Upload test failed: %s", e)

            return ProbeResult(
                status=MeasurementStatus.ONLINE,
                download_mbps=download_mbps,
                upload_mbps=upload_mbps,
                latency_ms=round2(latency_ms),
                meta={
                    "source": self.SOURCE,
                    "attempts": attempt,
                    "test_file_size": self.file_size_bytes,
                },
            )

        # Every attempt failed - is the link still up at all?
        try:
            await self.check_connectivity()
        except NoConnectivityError as e:
            logger.warning("Connectivity lost during speed test: %s", e)
            return self._offline(e, attempts=self.max_retries)

        return ProbeResult(
            status=MeasurementStatus.DEGRADED,
            error=SpeedTestFailedError(
                f"All {self.max_retries} speed test attempts failed",
            ).to_dict(),
            meta={
                "source": self.SOURCE,
                "attempts": self.max_retries,
                "note": "Speed test unreliable, connectivity confirmed",
                "last_error": last_error.message if last_error else None,
            },
        )


class SimulationProbe:
    """Generates plausible measurements without touching the network.

    Base speeds drift a little every cycle; outages and speed drops happen at
    fixed probabilities.
    """

    SOURCE = "simulation"

    def __init__(
        self,
        seed: Optional[int] = None,
        outage_probability: float = 0.08,
        drop_probability: float = 0.15,
        packet_loss_probability: float = 0.05,
    ):
        # Isolated random instance so seeded runs are reproducible
        self._random = random.Random(seed)
        self.outage_probability = outage_probability
        self.drop_probability = drop_probability
        self.packet_loss_probability = packet_loss_probability
        self.base_download = self._uniform(70, 150)
        self.base_upload = self._uniform(15, 40)

    def _uniform(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def _chance(self, probability: float) -> bool:
        return self._random.random() < probability

    async def measure(self) -> ProbeResult:
        if self._chance(self.outage_probability):
            return ProbeResult(
                status=MeasurementStatus.OFFLINE,
                error={"message": "Simulated connectivity loss", "code": NoConnectivityError.code},
                meta={"source": self.SOURCE, "simulation": True},
            )

        drift = self._uniform(-5, 5)
        self.base_download = max(10.0, self.base_download + drift)
        self.base_upload = max(5.0, self.base_upload + drift / 3)

        download = self._uniform(self.base_download * 0.7, self.base_download * 1.1)
        if self._chance(self.drop_probability):
            download *= self._uniform(0.3, 0.6)

        upload = self._uniform(self.base_upload * 0.7, self.base_upload * 1.05)
        packet_loss = self._uniform(1, 5) if self._chance(self.packet_loss_probability) else 0

        return ProbeResult(
            status=MeasurementStatus.ONLINE,
            download_mbps=round2(download),
            upload_mbps=round2(upload),
            latency_ms=round2(self._uniform(10, 80)),
            jitter_ms=round2(self._uniform(1, 10)),
            packet_loss_percent=round2(packet_loss),
            meta={"source": self.SOURCE, "simulation": True},
        )


def create_probe(settings) -> Probe:
    """Pick the probe strategy for the configured mode."""
    if settings.simulation_mode:
        logger.info("Using simulated probe")
        return SimulationProbe(seed=settings.simulation_seed)

    logger.info("Using network speed probe (connectivity: %s)", settings.connectivity_url)
    return NetworkSpeedProbe(
        connectivity_url=settings.connectivity_url,
        download_url=settings.download_url,
        upload_url=settings.upload_url,
        file_size_bytes=settings.network_test_file_size_bytes,
        upload_size_bytes=settings.network_test_upload_size_bytes,
        max_retries=settings.network_test_max_retries,
        retry_delay_ms=settings.network_test_retry_delay_ms,
        timeout_ms=settings.network_test_timeout_ms,
        connectivity_timeout_ms=settings.connectivity_timeout_ms,
        max_realistic_download_mbps=settings.max_realistic_download_mbps,
        max_realistic_upload_mbps=settings.max_realistic_upload_mbps,
    )
