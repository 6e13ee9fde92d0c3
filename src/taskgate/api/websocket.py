"""WebSocket connection manager for real-time scheduler events.

Forwards task lifecycle events from the :class:`EventBus` to every
connected client as JSON.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

if TYPE_CHECKING:
    from taskgate.core.events import Event, EventBus

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages active WebSocket connections and broadcasts events."""

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.append(ws)
        logger.info("WebSocket client connected (%d total)", len(self._connections))

    def disconnect(self, ws: WebSocket) -> None:
        if ws in self._connections:
            self._connections.remove(ws)
        logger.info("WebSocket client disconnected (%d total)", len(self._connections))

    async def broadcast(self, data: dict[str, Any]) -> None:
        """Send *data* as JSON to every connected client."""
        if not self._connections:
            return
        message = json.dumps(data, default=str)
        stale: list[WebSocket] = []
        for ws in list(self._connections):
            try:
                if ws.client_state == WebSocketState.CONNECTED:
                    await ws.send_text(message)
            except (WebSocketDisconnect, RuntimeError):
                stale.append(ws)
        for ws in stale:
            self.disconnect(ws)

    def attach(self, event_bus: EventBus) -> None:
        """Subscribe to every scheduler event on *event_bus*."""

        async def _forward(event: Event) -> None:
            await self.broadcast(event.to_dict())

        event_bus.subscribe_all(_forward)

    @property
    def active_connections(self) -> int:
        return len(self._connections)
