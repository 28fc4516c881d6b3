"""Message helpers for the chat API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from dal.chat_dal import MessageDAL, SessionDAL
from models.chat_models import TranslationStatus, normalize_sender

LOGGER = logging.getLogger(__name__)


async def list_messages(
    request: Request,
    session_id: str,
    since_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """Return a session's messages in ascending order, optionally after `since_id`."""
    if not session_id:
        raise HTTPException(status_code=400, detail="session_id is required")
    messages = await MessageDAL(request.app.state.db_initializer).list_messages(session_id, since_id, limit)
    return {"messages": [m.to_dict() for m in messages]}


async def create_message(
    request: Request,
    session_id: str,
    content: str,
    sender: str = "user",
    original_language: Optional[str] = None,
    target_language: Optional[str] = None,
    translation_status: Optional[str] = None,
) -> Dict[str, Any]:
    """Persist a message, refresh session activity and push it to relay sockets."""
    db_initializer = request.app.state.db_initializer
    if not content or not content.strip():
        raise HTTPException(status_code=400, detail="content is required")
    try:
        role = normalize_sender(sender)
        status = TranslationStatus(translation_status) if translation_status else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    sessions = SessionDAL(db_initializer)
    session = await sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")

    message = await MessageDAL(db_initializer).create_message(
        session_id,
        content,
        role,
        original_language=original_language,
        target_language=target_language,
        translation_status=status,
    )
    await sessions.touch(session_id)
    pushed = await request.app.state.relay_hub.broadcast_message(message)
    LOGGER.debug("Message %s pushed to %d relay socket(s)", message.id, pushed)
    return {"message": message.to_dict()}


async def update_translation(
    request: Request,
    message_id: int,
    translation_status: str,
    translated_content: Optional[str] = None,
) -> Dict[str, Any]:
    """Record a translation result for a message."""
    try:
        status = TranslationStatus(translation_status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    messages = MessageDAL(request.app.state.db_initializer)
    if await messages.get_message(message_id) is None:
        raise HTTPException(status_code=404, detail=f"Message {message_id} not found")
    updated = await messages.update_translation(message_id, status, translated_content)
    return {"message_id": message_id, "updated": updated}
