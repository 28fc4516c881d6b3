"""HTTP adapter for the chat server's row store and fallback translation endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from chat_client.errors import StoreError, TranslationError
from models.chat_models import ChatMessage, ChatSession, HostInfo, TranslationStatus

LOGGER = logging.getLogger(__name__)


class ChatApiClient:
    """Async client for the `/api` endpoints.

    Row-store operations raise `StoreError` and `translate` raises
    `TranslationError`; both wrap the underlying `httpx` failure.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("%s %s failed: %s", method, path, exc)
            raise StoreError(f"{method} {path} failed: {exc}") from exc

    @staticmethod
    def _decode_message(item: Any) -> ChatMessage:
        try:
            return ChatMessage.from_dict(item)
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"Malformed message row {item!r}: {exc}") from exc

    async def get_or_create_session(self, user_id: str, host_id: Optional[str] = None) -> tuple[ChatSession, bool]:
        """Return the guest's active session and whether it was just created."""
        params = {"user_id": user_id}
        if host_id:
            params["host_id"] = host_id
        data = await self._request("GET", "/api/sessions", params=params)
        return ChatSession.from_dict(data["session"]), bool(data.get("isNewSession"))

    async def get_host(self, host_id: str) -> HostInfo:
        data = await self._request("GET", f"/api/hosts/{host_id}")
        return HostInfo(**data)

    async def list_messages(
        self,
        session_id: str,
        since_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[ChatMessage]:
        params: Dict[str, Any] = {"session_id": session_id}
        if since_id is not None:
            params["since_id"] = since_id
        if limit:
            params["limit"] = limit
        data = await self._request("GET", "/api/messages", params=params)
        return [self._decode_message(item) for item in data.get("messages", [])]

    async def create_message(
        self,
        session_id: str,
        content: str,
        sender: str,
        *,
        original_language: Optional[str] = None,
        target_language: Optional[str] = None,
        translation_status: Optional[TranslationStatus] = None,
    ) -> ChatMessage:
        body = {
            "session_id": session_id,
            "content": content,
            "sender": sender,
            "original_language": original_language,
            "target_language": target_language,
            "translation_status": translation_status.value if translation_status else None,
        }
        data = await self._request("POST", "/api/messages", json=body)
        return self._decode_message(data.get("message"))

    async def update_translation(
        self,
        message_id: int,
        status: TranslationStatus,
        translated_content: Optional[str] = None,
    ) -> bool:
        body = {"translation_status": status.value, "translated_content": translated_content}
        data = await self._request("PATCH", f"/api/messages/{message_id}/translation", json=body)
        return bool(data.get("updated"))

    async def translate(self, text: str, source_language: Optional[str], target_language: str) -> str:
        """Translate through `POST /api/translate`."""
        body = {"text": text, "sourceLanguage": source_language, "targetLanguage": target_language}
        try:
            data = await self._request("POST", "/api/translate", json=body)
        except StoreError as exc:
            raise TranslationError(str(exc)) from exc
        translated = data.get("translatedText")
        if not isinstance(translated, str):
            raise TranslationError("Translate response did not include translatedText.")
        return translated
