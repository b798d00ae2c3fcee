import json
import logging
from typing import Any, Dict, List, Set

from starlette.websockets import WebSocket, WebSocketState

from ..schemas.pydantic_schemas import CallRecord

logger = logging.getLogger(__name__)


class DashboardBroadcaster:
    """Tracks open dashboard sockets and fans events out to all of them."""

    def __init__(self) -> None:
        self.clients: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.clients.add(websocket)
        logger.info(f"Dashboard connected. Total clients: {len(self.clients)}")
        try:
            await websocket.send_text(json.dumps({"type": "connection_established"}))
        except Exception as e:
            logger.warning(f"Error sending connection acknowledgement: {e}")

    def disconnect(self, websocket: WebSocket) -> None:
        self.clients.discard(websocket)
        logger.info(f"Dashboard disconnected. Total clients: {len(self.clients)}")

    async def broadcast(self, payload: Dict[str, Any]) -> int:
        """Send payload to every open client; returns how many received it."""
        text = json.dumps(payload)
        to_remove: List[WebSocket] = []
        delivered = 0

        # Snapshot: connect/disconnect may mutate the set while we await sends
        for client in list(self.clients):
            if not _is_open(client):
                to_remove.append(client)
                continue
            try:
                await client.send_text(text)
                delivered += 1
            except Exception as e:
                logger.debug(f"Failed to send to client: {e}")
                to_remove.append(client)

        for client in to_remove:
            self.clients.discard(client)

        logger.info(f"Broadcast {payload.get('type')} to {delivered} clients ({len(to_remove)} dropped)")
        return delivered

    async def new_call(self, call: CallRecord) -> int:
        return await self.broadcast({"type": "new_call", "call": call.to_payload()})

    async def delete_call(self, call_id: str) -> int:
        return await self.broadcast({"type": "delete_call", "id": call_id})


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )
