"""WebSocket endpoint for the realtime translation relay."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from services.realtime.relay_handler import RelayHandler

router = APIRouter()

LOGGER = logging.getLogger(__name__)


@router.websocket("/ws/translate")
async def relay_socket(websocket: WebSocket):
    """Serve connect, heartbeat and translate frames over one websocket."""
    await websocket.accept()
    state = websocket.app.state
    handler = RelayHandler(state.relay_hub, state.translation_provider, state.db_initializer)
    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            except KeyError:
                # Binary frames arrive without a "text" key.
                await websocket.send_text(json.dumps({"action": "status", "status": "error", "message": "Invalid websocket frame"}))
                continue
            try:
                await handler.handle_text(websocket, raw)
            except WebSocketDisconnect:
                break
            except Exception:
                LOGGER.exception("Relay frame failed for session %s", handler.session_id)
                await websocket.send_text(
                    json.dumps({"action": "status", "status": "error", "message": "Relay frame could not be processed"})
                )
    finally:
        handler.disconnect(websocket)
        LOGGER.info("Relay socket closed for session %s", handler.session_id)
    try:
        await websocket.close()
    except (RuntimeError, WebSocketDisconnect):
        # Already closed by the client.
        pass
