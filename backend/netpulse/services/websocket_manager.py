"""WebSocket connection manager - the live update channel for dashboards."""
import asyncio
import json
import logging
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections and broadcasts pipeline updates to all connected clients."""

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self.active_connections.add(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")
        # Tells the client it is subscribed; updates published from here on reach it
        await websocket.send_text(json.dumps({
            "type": "connected",
            "data": {"connections": len(self.active_connections)},
        }))

    async def disconnect(self, websocket: WebSocket):
        """Remove a disconnected WebSocket."""
        async with self._lock:
            self.active_connections.discard(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")

    async def broadcast(self, message: Dict[str, Any]):
        """Broadcast a message to all connected clients."""
        if not self.active_connections:
            return

        message_json = json.dumps(message, default=str)

        # Copy the set to avoid modification during iteration
        async with self._lock:
            connections = list(self.active_connections)

        # Send to all connections, removing any that fail
        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(message_json)
            except Exception as e:
                logger.debug(f"Failed to send to WebSocket: {e}")
                disconnected.append(websocket)

        if disconnected:
            async with self._lock:
                for ws in disconnected:
                    self.active_connections.discard(ws)

    async def publish(self, topic: str, payload: Any):
        """Broadcast a payload under a topic ("measurement" or "event")."""
        await self.broadcast({"type": topic, "data": payload})

    @property
    def connection_count(self) -> int:
        """Return the number of active connections."""
        return len(self.active_connections)
