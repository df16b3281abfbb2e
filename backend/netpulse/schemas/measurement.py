"""Measurement schemas for API."""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class MeasurementError(BaseModel):
    """Structured failure attached to offline and degraded measurements."""
    message: str
    code: Optional[str] = None


class MeasurementResponse(BaseModel):
    """Schema for a measurement in API responses."""
    id: Optional[int] = None  # None when the row could not be stored
    timestamp: datetime
    status: str  # online, offline, degraded
    download_mbps: Optional[float] = None
    upload_mbps: Optional[float] = None
    latency_ms: Optional[float] = None
    jitter_ms: Optional[float] = None
    packet_loss_percent: Optional[float] = None
    duration_since_last_ms: Optional[int] = None
    estimated_downtime_ms: Optional[int] = None
    error: Optional[MeasurementError] = None
    meta: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class TriggerResponse(BaseModel):
    """Result of a manual measurement trigger."""
    message: str
    measurement: MeasurementResponse
