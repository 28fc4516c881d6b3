from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.translate_controller import translate_text

router = APIRouter()


class TranslateRequest(BaseModel):
    text: str = ""
    targetLanguage: str = ""
    sourceLanguage: Optional[str] = None


@router.post("/api/translate")
async def post_translate(request: Request, payload: TranslateRequest):
    """Translate one text with the configured provider (relay fallback path)."""
    try:
        result = await translate_text(request, payload.text, payload.targetLanguage, payload.sourceLanguage)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return result
