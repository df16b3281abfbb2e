"""Database models."""
from .measurement import Measurement, MeasurementStatus, PreviousState
from .event import Event, EventType

__all__ = ["Measurement", "MeasurementStatus", "PreviousState", "Event", "EventType"]
