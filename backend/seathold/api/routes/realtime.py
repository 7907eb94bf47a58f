"""
WebSocket endpoint for live seat-map updates.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from seathold.core.logging import get_logger
from seathold.realtime.handler import handle_channel_message

logger = get_logger(__name__)
router = APIRouter(tags=["Realtime"])

TRY_AGAIN_LATER = 1013


@router.websocket("/ws/seats")
async def seat_channel(websocket: WebSocket):
    """
    Protocol: server sends `connected{clientId}` on accept; the client sends
    `{event, data}` commands (join, hold, release, complete) and receives
    every seat event broadcast by the service.
    """
    state = websocket.app.state
    registry = state.registry

    if not registry.is_running:
        await websocket.close(code=TRY_AGAIN_LATER)
        return

    channel = await registry.register(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await handle_channel_message(state.processor, state.session_factory, channel, raw)
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(channel.id)
