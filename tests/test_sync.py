import asyncio

import pytest

from chat_client.connection import RelayConnectionManager
from chat_client.dispatcher import TranslationDispatcher
from chat_client.errors import SendError, StoreError
from chat_client.sync import MessageSyncEngine
from fakes import FakeChatApi, FakeConnector, RecordingSleep, set_translation, settle
from models.chat_models import ChatMessage, TranslationStatus
from models.frames import NewMessageFrame


def message(message_id, created_at, session_id="s1", sender="user", content=None):
    return ChatMessage(
        id=message_id,
        session_id=session_id,
        content=content or f"message {message_id}",
        sender=sender,
        created_at=created_at,
    )


@pytest.fixture
async def relay():
    connector = FakeConnector()
    manager = RelayConnectionManager("ws://relay.test/ws/translate", connector=connector, sleep=RecordingSleep())
    await manager.connect("s1", "zh")
    await settle()
    manager.connector = connector
    yield manager
    await manager.close()


async def test_repeated_ids_from_every_source_appear_once():
    api = FakeChatApi()
    for text in ("a", "b", "c"):
        api.add("s1", text)
    engine = MessageSyncEngine(api)

    await engine.load("s1")
    engine.handle_frame(NewMessageFrame(message=api.rows[1].to_dict()))
    engine.ingest([api.rows[2], api.rows[0]])
    sent = await engine.send("s1", "d")
    engine.ingest([sent])
    engine.handle_frame(NewMessageFrame(message=sent.to_dict()))

    ids = [m.id for m in engine.timeline]
    assert ids == [1, 2, 3, 4]
    assert len(ids) == len(set(ids))


async def test_timeline_is_ordered_by_time_then_id():
    engine = MessageSyncEngine(FakeChatApi())

    engine.ingest([message(3, 5.0), message(9, 1.0)])
    assert [m.id for m in engine.timeline] == [9, 3]

    engine.ingest([message(2, 5.0), message(4, 7.0)])
    assert [m.id for m in engine.timeline] == [9, 2, 3, 4]

    engine.ingest([message(1, 5.0)])
    keys = [m.sort_key for m in engine.timeline]
    assert keys == sorted(keys)


async def test_guest_send_persists_without_translation():
    api = FakeChatApi()
    engine = MessageSyncEngine(api, target_language="zh")

    sent = await engine.send("s1", "Hi")

    assert sent.sender == "user"
    assert sent.translation_status is None
    assert api.translate_calls == []
    assert [m.id for m in engine.timeline] == [sent.id]


async def test_send_failure_raises_send_error():
    api = FakeChatApi()
    api.fail_create = True
    engine = MessageSyncEngine(api)

    with pytest.raises(SendError):
        await engine.send("s1", "Hi")
    assert engine.timeline == []


async def test_host_hello_is_translated_over_the_relay(relay):
    api = FakeChatApi()
    dispatcher = TranslationDispatcher(relay, api)
    engine = MessageSyncEngine(api, dispatcher, target_language="zh")
    dispatcher.add_result_listener(engine.apply_translation)

    sent = await engine.send("s1", "Hello", is_host=True)

    assert api.rows[-1].translation_status is TranslationStatus.PENDING
    assert relay.connector.socket.sent[-1] == {
        "action": "translate",
        "message_id": sent.id,
        "source_text": "Hello",
        "source_language": "auto",
        "target_language": "zh",
    }

    relay.connector.socket.push(
        {"action": "translate_result", "status": "success", "message_id": sent.id, "translated_text": "你好"}
    )
    await settle()

    shown = engine.timeline[0]
    assert engine.display_text(shown) == "你好"
    assert shown.translation_status is TranslationStatus.COMPLETED


async def test_incoming_host_message_triggers_fallback_translation():
    api = FakeChatApi(translations={"Welcome": "欢迎"})
    offline = RelayConnectionManager("ws://relay.test", connector=FakeConnector(fail_always=True))
    dispatcher = TranslationDispatcher(offline, api)
    engine = MessageSyncEngine(api, dispatcher, target_language="zh")
    dispatcher.add_result_listener(engine.apply_translation)
    api.add("s1", "Welcome", sender="host", translation_status=TranslationStatus.PENDING)

    await engine.load("s1")
    await settle()

    assert api.translate_calls == [("Welcome", "auto", "zh")]
    assert engine.display_text(engine.timeline[0]) == "欢迎"
    await engine.close()


async def test_subscription_polls_with_advancing_cursor():
    api = FakeChatApi()
    api.add("s1", "first")
    engine = MessageSyncEngine(api, poll_interval=0.01)
    await engine.load("s1")
    received = []
    unsubscribe = engine.subscribe("s1", received.append)

    api.add("s1", "second")
    api.add("s2", "elsewhere")
    api.add("s1", "third")
    await asyncio.sleep(0.05)
    unsubscribe()

    assert [m.content for m in received] == ["second", "third"]
    assert api.list_calls[1] == 1
    assert api.list_calls[-1] == 4
    assert [m.content for m in engine.timeline_for("s1")] == ["first", "second", "third"]


async def test_pushed_message_is_not_delivered_again_by_polling():
    api = FakeChatApi()
    engine = MessageSyncEngine(api, poll_interval=0.01)
    received = []
    engine.subscribe("s1", received.append)

    pushed = api.add("s1", "pushed")
    engine.handle_frame(NewMessageFrame(message=pushed.to_dict()))
    await asyncio.sleep(0.05)
    await engine.close()

    assert [m.id for m in received] == [pushed.id]


async def test_refresh_updates_translation_fields_in_place():
    api = FakeChatApi()
    api.add("s1", "Hello", sender="host", translation_status=TranslationStatus.PENDING)
    api.add("s1", "Hi")
    engine = MessageSyncEngine(api)
    await engine.load("s1")
    order = [m.id for m in engine.timeline]

    set_translation(api, 1, "你好", TranslationStatus.COMPLETED)
    updated = await engine.refresh("s1")

    assert updated == 1
    assert [m.id for m in engine.timeline] == order
    assert engine.timeline[0].translated_content == "你好"


async def test_refresh_never_reverses_a_terminal_status():
    api = FakeChatApi()
    api.add("s1", "Hello", sender="host", translated_content="你好", translation_status=TranslationStatus.COMPLETED)
    engine = MessageSyncEngine(api)
    await engine.load("s1")

    set_translation(api, 1, None, TranslationStatus.PENDING)
    assert await engine.refresh("s1") == 0

    assert engine.timeline[0].translation_status is TranslationStatus.COMPLETED
    assert engine.timeline[0].translated_content == "你好"


async def test_periodic_refresh_runs_until_closed():
    api = FakeChatApi()
    api.add("s1", "Hello", sender="host", translation_status=TranslationStatus.PENDING)
    engine = MessageSyncEngine(api, refresh_interval=0.01)
    await engine.load("s1")

    engine.start_refresh("s1")
    set_translation(api, 1, "你好", TranslationStatus.COMPLETED)
    await asyncio.sleep(0.05)
    await engine.close()
    calls = len(api.list_calls)
    await asyncio.sleep(0.03)

    assert engine.timeline[0].translation_status is TranslationStatus.COMPLETED
    assert len(api.list_calls) == calls


def test_display_text_keeps_original_without_translation():
    engine = MessageSyncEngine(FakeChatApi(), target_language="zh")
    host = message(1, 1.0, sender="host", content="Hello")
    host.translation_status = TranslationStatus.ERROR

    assert engine.display_text(host) == "Hello"
    assert engine.display_text(message(2, 2.0, content="Hi")) == "Hi"


class FlakyStore(FakeChatApi):
    """Store whose first poll fails the way a malformed row does."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    async def list_messages(self, session_id, since_id=None, limit=None):
        if self.failures:
            self.failures -= 1
            self.list_calls.append(since_id)
            raise StoreError("Malformed message row")
        return await super().list_messages(session_id, since_id, limit)


async def test_polling_survives_a_failed_batch():
    api = FlakyStore()
    engine = MessageSyncEngine(api, poll_interval=0.01)
    received = []
    engine.subscribe("s1", received.append)

    api.add("s1", "after the failure")
    await asyncio.sleep(0.05)
    await engine.close()

    assert [m.content for m in received] == ["after the failure"]
