"""WebSocket channel pushing node events to the local UI."""

import asyncio
import json
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)

UI_EVENTS = frozenset({
    "servers-updated",
    "text-received",
    "content-received",
    "file-received",
    "file-shared",
    "client-opened",
    "content-confirmation-request",
})


class ConnectionManager:
    """Tracks connected UI sockets and fans events out to them."""

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)
        logger.info(f"UI connected. Total: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info(f"UI disconnected. Total: {len(self._connections)}")

    async def broadcast(self, event: str, data) -> None:
        """Send ``{event, data}`` to every UI; drops sockets that fail."""
        message = json.dumps({"event": event, "data": data})
        async with self._lock:
            dead: list[WebSocket] = []
            for ws in self._connections:
                try:
                    await ws.send_text(message)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                self._connections.remove(ws)

    async def handle_event(self, event_type: str, data) -> None:
        """Event sink shared by the relay, gate, clip and discovery services."""
        if event_type not in UI_EVENTS:
            logger.warning(f"Dropping unknown UI event {event_type!r}")
            return
        await self.broadcast(event_type, data)
