import json

import httpx
import pytest

from chat_client.api import ChatApiClient
from chat_client.errors import StoreError, TranslationError
from models.chat_models import TranslationStatus

MESSAGE = {
    "id": 1,
    "session_id": "s1",
    "content": "Hello",
    "sender": "host",
    "created_at": 10.0,
    "original_language": "auto",
    "target_language": "zh",
    "translated_content": None,
    "translation_status": "pending",
}


def make_client(handler):
    transport = httpx.MockTransport(handler)
    return ChatApiClient("http://chat.test", client=httpx.AsyncClient(base_url="http://chat.test", transport=transport))


async def test_list_messages_passes_cursor_and_decodes_rows():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json={"messages": [MESSAGE]})

    messages = await make_client(handler).list_messages("s1", since_id=4)

    assert seen[0].path == "/api/messages"
    assert seen[0].params["since_id"] == "4"
    assert messages[0].translation_status is TranslationStatus.PENDING
    assert messages[0].is_host


async def test_create_message_posts_status_value():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"message": MESSAGE})

    message = await make_client(handler).create_message(
        "s1", "Hello", "host", target_language="zh", translation_status=TranslationStatus.PENDING
    )

    assert bodies[0]["translation_status"] == "pending"
    assert message.id == 1


async def test_get_or_create_session_reports_new_flag():
    def handler(request):
        return httpx.Response(
            200,
            json={"session": {"id": "abc", "host_id": "h1", "user_id": "guest-1"}, "isNewSession": True},
        )

    session, is_new = await make_client(handler).get_or_create_session("guest-1", "h1")

    assert session.id == "abc"
    assert is_new


async def test_update_translation_uses_patch():
    methods = []

    def handler(request):
        methods.append((request.method, request.url.path))
        return httpx.Response(200, json={"message_id": 1, "updated": True})

    assert await make_client(handler).update_translation(1, TranslationStatus.COMPLETED, "你好")
    assert methods == [("PATCH", "/api/messages/1/translation")]


async def test_store_failures_raise_store_error():
    client = make_client(lambda request: httpx.Response(503, json={"detail": "down"}))

    with pytest.raises(StoreError):
        await client.list_messages("s1")


async def test_translate_returns_text_and_wraps_failures():
    ok = make_client(lambda request: httpx.Response(200, json={"translatedText": "你好"}))
    broken = make_client(lambda request: httpx.Response(502, json={"detail": "provider"}))
    empty = make_client(lambda request: httpx.Response(200, json={}))

    assert await ok.translate("Hello", "auto", "zh") == "你好"
    with pytest.raises(TranslationError):
        await broken.translate("Hello", "auto", "zh")
    with pytest.raises(TranslationError):
        await empty.translate("Hello", "auto", "zh")


async def test_malformed_rows_raise_store_error():
    bad_row = dict(MESSAGE, sender="robot")
    client = make_client(lambda request: httpx.Response(200, json={"messages": [MESSAGE, bad_row]}))

    with pytest.raises(StoreError):
        await client.list_messages("s1")
