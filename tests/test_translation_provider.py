from types import SimpleNamespace

import pytest

from services.translation.provider import (
    MockTranslationProvider,
    OpenAITranslationProvider,
    TranslationError,
    build_provider,
    normalize_language,
)


class FakeResponses:
    def __init__(self, output_text=None, error=None):
        self.output_text = output_text
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(output_text=self.output_text)


def fake_client(**kwargs):
    return SimpleNamespace(responses=FakeResponses(**kwargs))


def test_normalize_language():
    assert normalize_language("zh-CN") == "zh"
    assert normalize_language("pt_BR") == "pt"
    assert normalize_language(None) == "auto"
    assert normalize_language("") == "auto"


async def test_mock_known_phrases_and_marker():
    provider = MockTranslationProvider()

    assert await provider.translate("Hello", "auto", "zh") == "你好"
    assert await provider.translate("thank you", "en", "fr") == "Merci"
    assert await provider.translate("See you soon", "en", "ja") == "[ja] See you soon"
    assert await provider.translate("Hola amigo", "es", "en") == "Hola amigo"


async def test_same_language_and_blank_text_are_returned_unchanged():
    provider = MockTranslationProvider()

    assert await provider.translate("Hello", "en-US", "en") == "Hello"
    assert await provider.translate("   ", "auto", "zh") == "   "


async def test_auto_target_is_rejected():
    with pytest.raises(TranslationError):
        await MockTranslationProvider().translate("Hello", "en", "auto")


async def test_openai_provider_reads_output_text():
    client = fake_client(output_text=" こんにちは \n")
    provider = OpenAITranslationProvider(client, model="test-model")

    assert await provider.translate("Hello", "en", "ja") == "こんにちは"
    call = client.responses.calls[0]
    assert call["model"] == "test-model"
    system_text = call["input"][0]["content"][0]["text"]
    assert "Japanese" in system_text and "English" in system_text
    assert call["input"][1]["content"][0]["text"] == "Hello"


async def test_openai_provider_wraps_failures():
    with pytest.raises(TranslationError):
        await OpenAITranslationProvider(fake_client(error=RuntimeError("quota"))).translate("Hello", "en", "zh")
    with pytest.raises(TranslationError):
        await OpenAITranslationProvider(fake_client(output_text="")).translate("Hello", "en", "zh")


def test_build_provider():
    assert build_provider("mock").name == "mock"
    assert build_provider("openai", client=fake_client()).name == "openai"
    with pytest.raises(RuntimeError):
        build_provider("deepl")
