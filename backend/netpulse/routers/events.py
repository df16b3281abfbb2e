"""Event endpoints."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..models import EventType
from ..schemas import EventResponse
from ..services.pipeline import PipelineCoordinator
from .deps import get_pipeline

router = APIRouter(prefix="/api/events", tags=["events"])


@router.get("/recent", response_model=List[EventResponse])
async def get_recent_events(
    limit: int = Query(default=50, ge=1, le=500),
    pipeline: PipelineCoordinator = Depends(get_pipeline),
):
    """Newest events, newest first."""
    return await pipeline.get_recent_events(limit)


@router.get("", response_model=List[EventResponse])
async def list_events(
    from_date: Optional[datetime] = Query(default=None, alias="from"),
    to_date: Optional[datetime] = Query(default=None, alias="to"),
    event_type: Optional[str] = Query(default=None, alias="type"),
    pipeline: PipelineCoordinator = Depends(get_pipeline),
):
    """Events in a date range, oldest first, optionally of one type."""
    if event_type and event_type not in EventType.ALL:
        raise HTTPException(status_code=400, detail=f"Unknown event type: {event_type}")
    return await pipeline.get_events(from_date, to_date, event_type)
