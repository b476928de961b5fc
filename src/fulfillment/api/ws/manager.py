from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket

logger = logging.getLogger(__name__)

ALL_ORDERS = "all"


class ConnectionManager:
    """Websocket subscribers keyed by order id, plus the ``all`` scope for staff consoles."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)
        self._scopes: dict[WebSocket, str] = {}
        self._lock = asyncio.Lock()

    async def register(self, websocket: WebSocket, scope: str) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[scope].add(websocket)
            self._scopes[websocket] = scope
        logger.info("ws_client_connected", extra={"scope": scope})

    async def unregister(self, websocket: WebSocket) -> None:
        async with self._lock:
            scope = self._scopes.pop(websocket, None)
            if scope is None:
                return
            sockets = self._connections.get(scope)
            if sockets is not None:
                sockets.discard(websocket)
                if not sockets:
                    self._connections.pop(scope, None)
        logger.info("ws_client_disconnected", extra={"scope": scope})

    async def broadcast(self, order_id: str, message_json_str: str) -> None:
        async with self._lock:
            targets = list(self._connections.get(order_id, set()) | self._connections.get(ALL_ORDERS, set()))

        stale: list[WebSocket] = []
        for websocket in targets:
            try:
                await websocket.send_text(message_json_str)
            except Exception:
                stale.append(websocket)

        for websocket in stale:
            await self.unregister(websocket)
