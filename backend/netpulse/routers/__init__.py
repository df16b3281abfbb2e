"""API routers."""
from .health import router as health_router
from .metrics import router as metrics_router
from .reports import router as reports_router
from .events import router as events_router
from .monitor import router as monitor_router
from .websocket import websocket_endpoint

__all__ = [
    "health_router",
    "metrics_router",
    "reports_router",
    "events_router",
    "monitor_router",
    "websocket_endpoint",
]
