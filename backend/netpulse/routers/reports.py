"""Report, statistics and database maintenance endpoints."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..schemas import (
    CleanupResponse,
    DatabaseStats,
    DetailedStatisticsResponse,
    ReportResponse,
)
from ..services.pipeline import PipelineCoordinator
from ..utils.time_utils import to_naive_utc
from .deps import get_pipeline

router = APIRouter(prefix="/api", tags=["reports"])


def _check_range(from_date: Optional[datetime], to_date: Optional[datetime]):
    if from_date and to_date and to_naive_utc(from_date) > to_naive_utc(to_date):
        raise HTTPException(status_code=400, detail="'from' must not be after 'to'")


@router.get("/reports", response_model=ReportResponse)
async def get_report(
    from_date: Optional[datetime] = Query(default=None, alias="from"),
    to_date: Optional[datetime] = Query(default=None, alias="to"),
    pipeline: PipelineCoordinator = Depends(get_pipeline),
):
    """Summary and raw records for a date range."""
    _check_range(from_date, to_date)
    report = await pipeline.get_report(from_date, to_date)
    return ReportResponse.model_validate(report)


@router.get("/statistics/detailed", response_model=DetailedStatisticsResponse)
async def get_detailed_statistics(
    from_date: Optional[datetime] = Query(default=None, alias="from"),
    to_date: Optional[datetime] = Query(default=None, alias="to"),
    pipeline: PipelineCoordinator = Depends(get_pipeline),
):
    """Summary, events by type and uptime periods. Defaults to the last 24 hours."""
    _check_range(from_date, to_date)
    stats = await pipeline.get_detailed_statistics(from_date, to_date)
    return DetailedStatisticsResponse.model_validate(stats)


@router.get("/database/stats", response_model=DatabaseStats)
async def get_database_stats(pipeline: PipelineCoordinator = Depends(get_pipeline)):
    return await pipeline.get_database_stats()


@router.post("/database/cleanup", response_model=CleanupResponse)
async def cleanup_database(
    older_than_hours: Optional[int] = Query(default=None, ge=0, le=87600),
    pipeline: PipelineCoordinator = Depends(get_pipeline),
):
    """Delete measurements and events older than the retention window."""
    return await pipeline.cleanup(older_than_hours)
