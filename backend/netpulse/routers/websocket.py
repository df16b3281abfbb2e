"""WebSocket endpoint for live measurement and event updates."""
from fastapi import WebSocket, WebSocketDisconnect


async def websocket_endpoint(websocket: WebSocket):
    """Subscribe a client to the publish channel until it disconnects."""
    manager = websocket.app.state.connection_manager
    await manager.connect(websocket)
    try:
        while True:
            # Clients only listen; incoming text is ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket)
