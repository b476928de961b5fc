from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from fulfillment.api.ws.manager import ConnectionManager

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    scope = websocket.query_params.get("order_id")
    if not scope:
        await websocket.close(code=1008, reason="order_id query parameter is required (an order id or 'all')")
        return

    manager: ConnectionManager = websocket.app.state.ws_manager
    await manager.register(websocket=websocket, scope=scope)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await manager.unregister(websocket)
    except Exception:
        logger.exception("ws_connection_error", extra={"scope": scope})
        await manager.unregister(websocket)
