"""FastAPI routes for chat sessions and host profiles."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.session_controller import get_host, get_or_create_session, save_host, start_session
from models.chat_models import HostInfo

router = APIRouter(prefix="/api")


class SessionPayload(BaseModel):
    user_id: str
    host_id: Optional[str] = None
    user_language: Optional[str] = None


class HostPayload(BaseModel):
    id: Optional[str] = None
    name: str
    title: Optional[str] = None
    url: Optional[str] = None
    avatar_url: Optional[str] = None


@router.get("/sessions")
async def get_session_route(request: Request, user_id: str, host_id: Optional[str] = None):
    try:
        return await get_or_create_session(request, user_id, host_id)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/sessions", status_code=201)
async def start_session_route(request: Request, payload: SessionPayload):
    try:
        return await start_session(request, payload.user_id, payload.host_id, payload.user_language)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/hosts/{host_id}")
async def get_host_route(request: Request, host_id: str):
    try:
        return await get_host(request, host_id)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/hosts", status_code=201)
async def save_host_route(request: Request, payload: HostPayload):
    host = HostInfo(
        id=payload.id or payload.name.strip().lower().replace(" ", "-"),
        name=payload.name,
        title=payload.title,
        url=payload.url,
        avatar_url=payload.avatar_url,
    )
    try:
        return await save_host(request, host)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
