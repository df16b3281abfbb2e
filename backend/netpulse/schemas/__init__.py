"""Pydantic schemas for API request/response models."""
from .measurement import (
    MeasurementError,
    MeasurementResponse,
    TriggerResponse,
)
from .event import EventResponse
from .statistics import (
    CleanupResponse,
    ConfigResponse,
    DatabaseStats,
    DetailedStatisticsResponse,
    ReportResponse,
    SummaryResponse,
    TodayStatsResponse,
)

__all__ = [
    "MeasurementError",
    "MeasurementResponse",
    "TriggerResponse",
    "EventResponse",
    "CleanupResponse",
    "ConfigResponse",
    "DatabaseStats",
    "DetailedStatisticsResponse",
    "ReportResponse",
    "SummaryResponse",
    "TodayStatsResponse",
]
