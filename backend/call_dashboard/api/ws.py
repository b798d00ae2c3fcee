import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..services.broadcaster import DashboardBroadcaster
from .deps import get_broadcaster

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws")
async def dashboard_socket(websocket: WebSocket, broadcaster: DashboardBroadcaster = Depends(get_broadcaster)):
    await broadcaster.connect(websocket)
    try:
        while True:
            # Text and binary frames are both acknowledged and otherwise ignored
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            size = len(message.get("text") or message.get("bytes") or "")
            logger.debug(f"Received dashboard message: size={size}")
            await websocket.send_text(json.dumps({"type": "ack"}))
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)
