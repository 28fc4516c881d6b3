import asyncio

import pytest

from chat_client.connection import RelayConnectionManager
from chat_client.dispatcher import TranslationDispatcher
from fakes import FakeChatApi, FakeConnector, RecordingSleep, settle
from models.chat_models import TranslationStatus


@pytest.fixture
async def relay():
    connector = FakeConnector()
    manager = RelayConnectionManager("ws://relay.test/ws/translate", connector=connector, sleep=RecordingSleep())
    await manager.connect("s1", "zh")
    await settle()
    manager.connector = connector
    yield manager
    await manager.close()


@pytest.fixture
def offline_relay():
    return RelayConnectionManager("ws://relay.test/ws/translate", connector=FakeConnector(fail_always=True))


def result_frame(message_id, text="你好", status="success", error=None):
    frame = {
        "action": "translate_result",
        "status": status,
        "message_id": message_id,
        "source_language": "auto",
        "target_language": "zh",
    }
    if text is not None:
        frame["translated_text"] = text
    if error:
        frame["error"] = error
    return frame


async def test_connected_relay_sends_translate_frame_and_reports_processing(relay):
    api = FakeChatApi()
    dispatcher = TranslationDispatcher(relay, api)

    outcome = await dispatcher.translate(7, "Hello", "auto", "zh")

    assert outcome.status is TranslationStatus.PROCESSING
    assert relay.connector.socket.sent[-1] == {
        "action": "translate",
        "message_id": 7,
        "source_text": "Hello",
        "source_language": "auto",
        "target_language": "zh",
    }
    assert api.translate_calls == []


async def test_relay_result_invokes_registered_callback(relay):
    api = FakeChatApi()
    dispatcher = TranslationDispatcher(relay, api)
    received = []
    dispatcher.register_callback(7, received.append)
    await dispatcher.translate(7, "Hello", "auto", "zh")

    relay.connector.socket.push(result_frame(7))
    await settle()

    assert received == ["你好"]
    assert dispatcher.get_result(7).status is TranslationStatus.COMPLETED
    assert api.updates == []


async def test_relay_result_without_callback_is_cached_and_persisted(relay):
    api = FakeChatApi()
    dispatcher = TranslationDispatcher(relay, api)
    await dispatcher.translate(8, "Hello", "auto", "zh")
    dispatcher.register_callback(8, lambda text: None)
    dispatcher.unregister_callback(8)

    relay.connector.socket.push(result_frame(8))
    await settle()

    entry = dispatcher.get_result(8)
    assert entry.status is TranslationStatus.COMPLETED
    assert entry.text == "你好"
    assert api.updates == [(8, TranslationStatus.COMPLETED, "你好")]


async def test_relay_error_result_marks_error_without_callback(relay):
    api = FakeChatApi()
    dispatcher = TranslationDispatcher(relay, api)
    received = []
    dispatcher.register_callback(9, received.append)
    await dispatcher.translate(9, "Hello", "auto", "zh")

    relay.connector.socket.push(result_frame(9, text=None, status="error", error="provider down"))
    await settle()

    assert received == []
    assert dispatcher.get_result(9).status is TranslationStatus.ERROR
    assert api.updates == []


async def test_late_registration_gets_cached_result_once_on_next_tick(relay):
    api = FakeChatApi()
    dispatcher = TranslationDispatcher(relay, api)
    await dispatcher.translate(10, "Hello", "auto", "zh")
    relay.connector.socket.push(result_frame(10))
    await settle()

    received = []
    dispatcher.register_callback(10, received.append)
    assert received == []

    await asyncio.sleep(0)
    assert received == ["你好"]

    await settle()
    assert received == ["你好"]


async def test_unregister_before_deferred_delivery_drops_it(relay):
    api = FakeChatApi()
    dispatcher = TranslationDispatcher(relay, api)
    await dispatcher.translate(11, "Hello", "auto", "zh")
    relay.connector.socket.push(result_frame(11))
    await settle()

    received = []
    dispatcher.register_callback(11, received.append)
    dispatcher.unregister_callback(11)
    await settle()

    assert received == []


async def test_wait_for_resolves_with_relay_result(relay):
    dispatcher = TranslationDispatcher(relay, FakeChatApi())
    await dispatcher.translate(12, "Hello", "auto", "zh")
    waiter = asyncio.create_task(dispatcher.wait_for(12))
    await settle()

    relay.connector.socket.push(result_frame(12))

    assert await asyncio.wait_for(waiter, 1) == "你好"


async def test_fallback_translates_persists_and_calls_back(offline_relay):
    api = FakeChatApi(translations={"Hello": "你好"})
    dispatcher = TranslationDispatcher(offline_relay, api)
    received = []
    dispatcher.register_callback(3, received.append)

    outcome = await dispatcher.translate(3, "Hello", "en", "zh")

    assert outcome.status is TranslationStatus.COMPLETED
    assert outcome.text == "你好"
    assert received == ["你好"]
    assert api.translate_calls == [("Hello", "en", "zh")]
    assert api.updates == [(3, TranslationStatus.COMPLETED, "你好")]


async def test_fallback_failure_marks_error_and_skips_persist(offline_relay):
    api = FakeChatApi()
    api.fail_translate = True
    dispatcher = TranslationDispatcher(offline_relay, api)

    outcome = await dispatcher.translate(4, "Hello", "auto", "zh")

    assert outcome.status is TranslationStatus.ERROR
    assert dispatcher.get_result(4).status is TranslationStatus.ERROR
    assert api.updates == []
    assert await dispatcher.wait_for(4) is None


async def test_persist_failure_keeps_cached_result(offline_relay):
    api = FakeChatApi(translations={"Hello": "你好"})
    api.fail_persist = True
    dispatcher = TranslationDispatcher(offline_relay, api)

    outcome = await dispatcher.translate(5, "Hello", "auto", "zh")

    assert outcome.status is TranslationStatus.COMPLETED
    assert dispatcher.get_result(5).text == "你好"


async def test_failed_relay_send_falls_back_to_provider(relay):
    api = FakeChatApi(translations={"Hello": "你好"})
    dispatcher = TranslationDispatcher(relay, api)
    relay.connector.socket.fail_sends = True

    outcome = await dispatcher.translate(6, "Hello", "auto", "zh")

    assert outcome.status is TranslationStatus.COMPLETED
    assert api.translate_calls == [("Hello", "auto", "zh")]


async def test_result_listener_sees_terminal_results(offline_relay):
    api = FakeChatApi(translations={"Hello": "你好"})
    dispatcher = TranslationDispatcher(offline_relay, api)
    seen = []
    dispatcher.add_result_listener(lambda mid, text, status: seen.append((mid, text, status)))

    await dispatcher.translate(1, "Hello", "auto", "zh")

    assert seen == [(1, "你好", TranslationStatus.COMPLETED)]


async def test_repeated_translate_keeps_completed_result(relay):
    api = FakeChatApi()
    dispatcher = TranslationDispatcher(relay, api)
    await dispatcher.translate(7, "Hello", "auto", "zh")
    relay.connector.socket.push(result_frame(7))
    await settle()

    outcome = await dispatcher.translate(7, "Hello", "auto", "zh")

    assert outcome.status is TranslationStatus.COMPLETED
    assert outcome.text == "你好"
    assert dispatcher.get_result(7).status is TranslationStatus.COMPLETED
    assert relay.connector.socket.actions().count("translate") == 1

    received = []
    dispatcher.register_callback(7, received.append)
    await settle()
    assert received == ["你好"]


async def test_concurrent_translate_for_same_message_sends_once(relay):
    dispatcher = TranslationDispatcher(relay, FakeChatApi())

    outcomes = await asyncio.gather(
        dispatcher.translate(8, "Hello", "auto", "zh"),
        dispatcher.translate(8, "Hello", "auto", "zh"),
    )

    assert relay.connector.socket.actions().count("translate") == 1
    assert outcomes[0].status is TranslationStatus.PROCESSING
    assert dispatcher.get_result(8).status is TranslationStatus.PROCESSING
