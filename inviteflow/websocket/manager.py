from typing import Dict, List
from fastapi import WebSocket
from starlette.websockets import WebSocketState
import asyncio
import json

from inviteflow.core.logging import logger


class WebSocketFrame:
    """Template frame backed by a websocket connection."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return self.websocket.application_state == WebSocketState.CONNECTED

    async def send(self, message: dict):
        if not self.is_open:
            return
        await self.websocket.send_text(json.dumps(message))


class ConnectionManager:
    """Dashboard sockets grouped by the event they display."""

    def __init__(self):
        # map event_id -> list of websockets
        self.active: Dict[str, List[WebSocket]] = {}
        self.lock = asyncio.Lock()

    async def connect(self, event_id: str, websocket: WebSocket):
        await websocket.accept()
        async with self.lock:
            self.active.setdefault(str(event_id), []).append(websocket)

    async def disconnect(self, event_id: str, websocket: WebSocket):
        async with self.lock:
            conns = self.active.get(str(event_id), [])
            if websocket in conns:
                conns.remove(websocket)
            if not conns:
                self.active.pop(str(event_id), None)

    def event_ids(self) -> List[str]:
        return list(self.active.keys())

    async def send_to_event(self, event_id, message: dict) -> int:
        conns = list(self.active.get(str(event_id), []))
        return await self._send_all(str(event_id), conns, message)

    async def broadcast(self, message: dict) -> int:
        sent = 0
        for event_id, conns in list(self.active.items()):
            sent += await self._send_all(event_id, list(conns), message)
        return sent

    async def _send_all(self, event_id: str, conns: List[WebSocket], message: dict) -> int:
        data = json.dumps(message)
        sent = 0
        for ws in conns:
            try:
                await ws.send_text(data)
                sent += 1
            except Exception as e:
                logger.warning(f"Dropping broken dashboard socket for event {event_id}: {e}")
                await self.disconnect(event_id, ws)
        return sent


manager = ConnectionManager()
