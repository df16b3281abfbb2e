"""Event model - state changes detected between consecutive measurements."""
import uuid

from sqlalchemy import JSON, Column, DateTime, String

from ..database import Base


class EventType:
    """Allowed values for ``Event.type``."""

    CONNECTION_LOST = "connection-lost"
    CONNECTION_RESTORED = "connection-restored"
    SPEED_DEGRADATION = "speed-degradation"
    SPEED_IMPROVED = "speed-improved"

    ALL = (CONNECTION_LOST, CONNECTION_RESTORED, SPEED_DEGRADATION, SPEED_IMPROVED)


def generate_event_id() -> str:
    return uuid.uuid4().hex


class Event(Base):
    """A detected transition. Written once, never updated."""

    __tablename__ = "events"

    id = Column(String, primary_key=True, default=generate_event_id)
    type = Column(String, nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)  # From the triggering measurement
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)

    @classmethod
    def create(cls, event_type: str, timestamp, details: dict) -> "Event":
        """Build a new event with a fresh id."""
        if event_type not in EventType.ALL:
            raise ValueError(f"Invalid event type: {event_type}")
        return cls(
            id=generate_event_id(),
            type=event_type,
            timestamp=timestamp,
            details=details,
        )

    def __repr__(self) -> str:
        return f"<Event {self.type} at {self.timestamp}>"
