"""Health and configuration endpoints."""
from fastapi import APIRouter, Depends, Request

from ..schemas import ConfigResponse
from ..services.pipeline import PipelineCoordinator
from .deps import get_pipeline

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    pipeline = getattr(request.app.state, "pipeline", None)
    collector = pipeline.collector if pipeline else None
    manager = getattr(request.app.state, "connection_manager", None)
    return {
        "status": "healthy",
        "collector_running": bool(collector and collector.running),
        "in_flight": bool(collector and collector.in_flight),
        "scheduler_running": bool(pipeline and pipeline.scheduler.is_running),
        "websocket_clients": manager.connection_count if manager else 0,
    }


@router.get("/api/config", response_model=ConfigResponse)
async def get_config(request: Request, pipeline: PipelineCoordinator = Depends(get_pipeline)):
    """Read-only view of the settings the pipeline runs with."""
    settings = request.app.state.settings
    return ConfigResponse(
        monitor_interval_ms=settings.monitor_interval_ms,
        simulation_mode=settings.simulation_mode,
        speed_drop_threshold_mbps=settings.speed_drop_threshold_mbps,
        speed_drop_percent=settings.speed_drop_percent,
        speed_improve_threshold_mbps=settings.speed_improve_threshold_mbps,
        speed_improve_percent=settings.speed_improve_percent,
        network_test_max_retries=settings.network_test_max_retries,
        network_test_retry_delay_ms=settings.network_test_retry_delay_ms,
        network_test_timeout_ms=settings.network_test_timeout_ms,
        connectivity_timeout_ms=settings.connectivity_timeout_ms,
        max_realistic_download_mbps=settings.max_realistic_download_mbps,
        max_realistic_upload_mbps=settings.max_realistic_upload_mbps,
        retention_hours=pipeline.retention_hours,
        database="postgresql" if settings.is_postgresql() else "sqlite",
    )
