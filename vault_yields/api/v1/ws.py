"""Websocket push of vault yields."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from vault_yields.services.delivery import YieldBroadcaster

router = APIRouter()


@router.websocket("/ws")
async def yields_websocket(websocket: WebSocket) -> None:
    """Send yields on connect, then on every broadcast tick until the client leaves."""
    broadcaster: YieldBroadcaster = websocket.app.state.broadcaster
    if not await broadcaster.connect(websocket):
        return
    try:
        # Inbound messages are ignored; reading detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)
