"""Event schemas for API."""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, Field


class EventResponse(BaseModel):
    """Schema for a detected event in API responses."""
    id: str
    type: str  # connection-lost, connection-restored, speed-degradation, speed-improved
    timestamp: datetime
    # Stored as Event.details on the ORM model
    metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        validation_alias=AliasChoices("details", "metadata"),
    )

    class Config:
        from_attributes = True
