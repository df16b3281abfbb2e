"""Shared router dependencies."""
from fastapi import HTTPException, Request

from ..services.pipeline import PipelineCoordinator


def get_pipeline(request: Request) -> PipelineCoordinator:
    """The pipeline created by the application lifespan."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Monitoring pipeline not started")
    return pipeline
