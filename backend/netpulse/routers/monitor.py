"""Manual measurement trigger."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..errors import TriggerTimeoutError
from ..schemas import MeasurementResponse, TriggerResponse
from ..services.pipeline import PipelineCoordinator
from .deps import get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/monitor", tags=["monitor"])


@router.post("/trigger", response_model=TriggerResponse, status_code=202)
async def trigger_measurement(pipeline: PipelineCoordinator = Depends(get_pipeline)):
    """Run a measurement now, or wait for the one already in progress."""
    try:
        measurement = await pipeline.trigger_measurement()
    except TriggerTimeoutError as e:
        logger.warning(f"Manual trigger timed out: {e}")
        raise HTTPException(status_code=504, detail=e.to_dict())
    return TriggerResponse(
        message="Measurement completed",
        measurement=MeasurementResponse.model_validate(measurement),
    )
