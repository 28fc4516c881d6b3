"""FastAPI routes for chat messages."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.message_controller import create_message, list_messages, update_translation

router = APIRouter(prefix="/api/messages")


class MessagePayload(BaseModel):
    session_id: str
    content: str
    sender: str = "user"
    original_language: Optional[str] = None
    target_language: Optional[str] = None
    translation_status: Optional[str] = None


class TranslationPayload(BaseModel):
    translation_status: str
    translated_content: Optional[str] = None


@router.get("")
async def list_messages_route(
    request: Request,
    session_id: str,
    since_id: Optional[int] = None,
    limit: Optional[int] = None,
):
    try:
        return await list_messages(request, session_id, since_id, limit)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("", status_code=201)
async def create_message_route(request: Request, payload: MessagePayload):
    try:
        return await create_message(
            request,
            payload.session_id,
            payload.content,
            payload.sender,
            payload.original_language,
            payload.target_language,
            payload.translation_status,
        )
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.patch("/{message_id}/translation")
async def update_translation_route(request: Request, message_id: int, payload: TranslationPayload):
    try:
        return await update_translation(
            request, message_id, payload.translation_status, payload.translated_content
        )
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
