"""Session and host lookup helpers for the chat API."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from dal.chat_dal import HostDAL, SessionDAL
from models.chat_models import HostInfo


async def get_or_create_session(request: Request, user_id: str, host_id: Optional[str] = None) -> Dict[str, Any]:
    """Return the guest's latest active session, creating one when none exists."""
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id is required")
    sessions = SessionDAL(request.app.state.db_initializer)
    session = await sessions.latest_active_session(user_id, host_id)
    if session is not None:
        return {"session": session.to_dict(), "isNewSession": False}
    session = await sessions.create_session(user_id=user_id, host_id=host_id)
    return {"session": session.to_dict(), "isNewSession": True}


async def start_session(
    request: Request,
    user_id: str,
    host_id: Optional[str] = None,
    user_language: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a new session for a guest."""
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id is required")
    sessions = SessionDAL(request.app.state.db_initializer)
    session = await sessions.create_session(user_id=user_id, host_id=host_id, user_language=user_language)
    return {"session": session.to_dict()}


async def get_host(request: Request, host_id: str) -> Dict[str, Any]:
    """Return a host profile; unknown hosts get the default profile."""
    host = await HostDAL(request.app.state.db_initializer).get_host(host_id)
    return (host or HostInfo.default(host_id)).to_dict()


async def save_host(request: Request, host: HostInfo) -> Dict[str, Any]:
    """Create or replace a host profile."""
    if not host.name.strip():
        raise HTTPException(status_code=400, detail="name is required")
    saved = await HostDAL(request.app.state.db_initializer).upsert_host(host)
    return {"host": saved.to_dict()}
