"""In-memory registry of relay sockets per chat session."""

from __future__ import annotations

import logging
from typing import Dict, Set

from fastapi import WebSocket

from models.chat_models import ChatMessage
from models.frames import NewMessageFrame, encode_frame

LOGGER = logging.getLogger(__name__)


class RelayHub:
    """Track which websockets are attached to which session."""

    def __init__(self) -> None:
        self._sockets: Dict[str, Set[WebSocket]] = {}

    def attach(self, session_id: str, websocket: WebSocket) -> None:
        """Attach a socket to a session, detaching it from any previous one."""
        self.detach(websocket)
        self._sockets.setdefault(session_id, set()).add(websocket)

    def detach(self, websocket: WebSocket) -> None:
        """Remove a socket from whatever session it was attached to."""
        for session_id in [sid for sid, sockets in self._sockets.items() if websocket in sockets]:
            sockets = self._sockets[session_id]
            sockets.discard(websocket)
            if not sockets:
                del self._sockets[session_id]

    def connection_count(self, session_id: str) -> int:
        return len(self._sockets.get(session_id, ()))

    async def broadcast_message(self, message: ChatMessage) -> int:
        """Push a new message to every socket of its session. Returns the delivery count."""
        payload = encode_frame(NewMessageFrame(message=message.to_dict()))
        delivered = 0
        for websocket in list(self._sockets.get(message.session_id, ())):
            try:
                await websocket.send_text(payload)
                delivered += 1
            except Exception as exc:
                LOGGER.warning("Dropping relay socket for session %s: %s", message.session_id, exc)
                self.detach(websocket)
        return delivered
