from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from services.translation.provider import AUTO_DETECT, TranslationError


async def translate_text(
    request: Request,
    text: str,
    target_language: str,
    source_language: Optional[str] = None,
) -> Dict[str, Any]:
    """Translate `text` with the configured provider.

    This is the request/response path clients use when the relay socket
    is unavailable.

    Raises:
        HTTPException(400) if text or target language is missing.
        HTTPException(502) if the provider fails.
    """
    if not text or not target_language:
        raise HTTPException(status_code=400, detail="Missing required fields: text, targetLanguage")

    provider = request.app.state.translation_provider
    try:
        translated = await provider.translate(text, source_language, target_language)
    except TranslationError as exc:
        raise HTTPException(status_code=502, detail=f"Translation service error: {exc}") from exc

    return {
        "originalText": text,
        "translatedText": translated,
        "targetLanguage": target_language,
        "sourceLanguage": source_language or AUTO_DETECT,
    }
