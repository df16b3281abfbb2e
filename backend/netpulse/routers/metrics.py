"""Measurement endpoints for the dashboard."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import MeasurementResponse, TodayStatsResponse
from ..services.pipeline import PipelineCoordinator
from .deps import get_pipeline

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


@router.get("/latest", response_model=Optional[MeasurementResponse])
async def get_latest(pipeline: PipelineCoordinator = Depends(get_pipeline)):
    """Most recent measurement, or null before the first cycle."""
    return await pipeline.get_latest()


@router.get("/recent", response_model=List[MeasurementResponse])
async def get_recent(
    limit: int = Query(default=50, ge=1, le=500),
    pipeline: PipelineCoordinator = Depends(get_pipeline),
):
    """Newest measurements, oldest first."""
    return await pipeline.get_recent(limit)


@router.get("/today", response_model=TodayStatsResponse)
async def get_today(pipeline: PipelineCoordinator = Depends(get_pipeline)):
    stats = await pipeline.get_today_stats()
    return TodayStatsResponse.model_validate(stats)
