"""Dispatch relay websocket frames for one connected client."""
from __future__ import annotations

import logging
from typing import Optional

import aiosqlite
from fastapi import WebSocket

from dal.chat_dal import MessageDAL, SessionDAL
from models.chat_models import TranslationStatus
from models.frames import (
    ConnectFrame,
    Frame,
    FrameError,
    HeartbeatFrame,
    StatusFrame,
    TranslateFrame,
    TranslateResultFrame,
    UnknownFrame,
    encode_frame,
    heartbeat,
    parse_frame,
)
from services.realtime.relay_hub import RelayHub
from services.translation.provider import TranslationError, TranslationProvider

LOGGER = logging.getLogger(__name__)


class RelayHandler:
    """Route relay frames from a single websocket.

    Frames are handled strictly in arrival order, so translate results for
    one connection are sent back in request order.
    """

    def __init__(self, hub: RelayHub, provider: TranslationProvider, db_initializer) -> None:
        self.hub = hub
        self.provider = provider
        self.sessions = SessionDAL(db_initializer)
        self.messages = MessageDAL(db_initializer)
        self.session_id: Optional[str] = None
        self.user_language: Optional[str] = None

    async def handle_text(self, websocket: WebSocket, raw: str) -> None:
        """Decode one raw frame and process it; bad frames get an error status."""
        try:
            frame = parse_frame(raw)
        except FrameError as exc:
            LOGGER.warning("Rejected relay frame: %s", exc)
            await self._send(websocket, StatusFrame(status="error", message=str(exc)))
            return
        await self.handle(websocket, frame)

    async def handle(self, websocket: WebSocket, frame: Frame) -> None:
        if isinstance(frame, ConnectFrame):
            await self._connect(websocket, frame)
        elif isinstance(frame, HeartbeatFrame):
            await self._send(websocket, heartbeat(with_timestamp=True))
        elif isinstance(frame, TranslateFrame):
            await self._translate(websocket, frame)
        elif isinstance(frame, UnknownFrame):
            LOGGER.warning("Unsupported relay action %r", frame.action)
            await self._send(
                websocket,
                StatusFrame(status="error", session_id=self.session_id, message="Unsupported action."),
            )
        else:
            # Server-to-client frame types sent by a client are ignored.
            LOGGER.debug("Ignoring relay frame %r from client", frame.action)

    def disconnect(self, websocket: WebSocket) -> None:
        self.hub.detach(websocket)

    async def _connect(self, websocket: WebSocket, frame: ConnectFrame) -> None:
        session = await self.sessions.get_session(frame.session_id)
        if session is None:
            await self._send(
                websocket,
                StatusFrame(
                    status="error",
                    session_id=frame.session_id,
                    message="Session not found",
                    action="connect_result",
                ),
            )
            return
        self.session_id = session.id
        self.user_language = frame.user_language
        self.hub.attach(session.id, websocket)
        try:
            await self.sessions.touch(session.id, user_language=frame.user_language)
        except aiosqlite.Error as exc:
            LOGGER.error("Could not record language for session %s: %s", session.id, exc)
        LOGGER.info("Relay connected for session %s (language=%s)", session.id, frame.user_language)
        await self._send(
            websocket,
            StatusFrame(
                status="connected",
                session_id=session.id,
                message="Relay connection established",
                action="connect_result",
            ),
        )

    async def _translate(self, websocket: WebSocket, frame: TranslateFrame) -> None:
        try:
            translated = await self.provider.translate(frame.source_text, frame.source_language, frame.target_language)
        except TranslationError as exc:
            LOGGER.warning("Relay translation of message %s failed: %s", frame.message_id, exc)
            await self._save_translation(frame.message_id, TranslationStatus.ERROR)
            await self._send(
                websocket,
                TranslateResultFrame(
                    status="error",
                    message_id=frame.message_id,
                    source_language=frame.source_language,
                    target_language=frame.target_language,
                    error=str(exc),
                ),
            )
            return

        await self._save_translation(frame.message_id, TranslationStatus.COMPLETED, translated)
        await self._send(
            websocket,
            TranslateResultFrame(
                status="success",
                message_id=frame.message_id,
                translated_text=translated,
                source_language=frame.source_language,
                target_language=frame.target_language,
            ),
        )

    async def _save_translation(
        self, message_id: Optional[int], status: TranslationStatus, translated: Optional[str] = None
    ) -> None:
        """Persist a translation outcome; a store failure must not stop the reply."""
        if message_id is None:
            return
        try:
            await self.messages.update_translation(message_id, status, translated)
        except aiosqlite.Error as exc:
            LOGGER.error("Could not save translation of message %s: %s", message_id, exc)

    async def _send(self, websocket: WebSocket, frame: Frame) -> None:
        await websocket.send_text(encode_frame(frame))
