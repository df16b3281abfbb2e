"""Main FastAPI application - hosts the monitoring pipeline and its API."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .database import close_db, create_engine, create_session_factory, init_db
from .errors import StorageFailureError
from .routers import (
    events_router,
    health_router,
    metrics_router,
    monitor_router,
    reports_router,
    websocket_endpoint,
)
from .services.pipeline import build_pipeline
from .services.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(settings: Optional[Settings] = None, probe=None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``probe`` replaces the configured probe strategy; tests use it to run the
    pipeline without network access.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        mode = "simulation" if settings.simulation_mode else "network"
        logger.info(f"Starting NetPulse ({mode} probe, interval={settings.monitor_interval_ms}ms)")

        engine = create_engine(settings)
        await init_db(engine, settings)
        logger.info("Database initialized")

        manager = ConnectionManager()
        pipeline = build_pipeline(
            settings,
            create_session_factory(engine),
            publish=manager.publish,
            probe=probe,
        )
        app.state.settings = settings
        app.state.connection_manager = manager
        app.state.pipeline = pipeline

        await pipeline.start()

        yield

        # Shutdown
        pipeline.stop()
        app.state.pipeline = None
        await close_db(engine)
        logger.info("Shutdown complete")

    app = FastAPI(
        title="NetPulse",
        description="Internet connection monitoring - uptime, outages and speed trends",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware for dashboard frontends
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageFailureError)
    async def storage_failure_handler(request: Request, exc: StorageFailureError):
        logger.error(f"Storage failure on {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": exc.to_dict()})

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(reports_router)
    app.include_router(events_router)
    app.include_router(monitor_router)
    app.add_api_websocket_route(settings.ws_path, websocket_endpoint)

    return app


def run():
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.web_port)


if __name__ == "__main__":
    run()
