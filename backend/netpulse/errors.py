"""Error taxonomy for the monitoring pipeline."""
from typing import Optional


class NetPulseError(Exception):
    """Base class for all pipeline errors."""

    code = "NETPULSE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        """Structured form stored on a Measurement's ``error`` field."""
        return {"message": self.message, "code": self.code}


class NoConnectivityError(NetPulseError):
    """The connectivity pre-check failed. Not retried within a cycle."""

    code = "NO_CONNECTIVITY"


class SpeedTestFailedError(NetPulseError):
    """A single speed test attempt failed. Retried up to the configured limit."""

    code = "SPEED_TEST_FAILED"


class UnrealisticReadingError(SpeedTestFailedError):
    """A metric was non-finite, non-positive, or above its realism ceiling."""

    code = "UNREALISTIC_READING"

    def __init__(self, metric: str, value: Optional[float], ceiling: float):
        super().__init__(f"Unrealistic {metric} reading: {value} (ceiling {ceiling})")
        self.metric = metric
        self.value = value
        self.ceiling = ceiling


class StorageFailureError(NetPulseError):
    """Persisting a measurement or event failed."""

    code = "STORAGE_FAILURE"


class TriggerTimeoutError(NetPulseError):
    """A manual trigger waited past its deadline for a measurement."""

    code = "TRIGGER_TIMEOUT"
