"""Translation providers used by the relay and the HTTP translate endpoint.

Every provider exposes one coroutine, `translate(text, source_language,
target_language) -> str`, and raises `TranslationError` when it cannot
produce a translation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Optional

from openai import AsyncOpenAI

LOGGER = logging.getLogger(__name__)

AUTO_DETECT = "auto"

SUPPORTED_LANGUAGES: Dict[str, str] = {
    "en": "English",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "ru": "Russian",
    "pt": "Portuguese",
    "ar": "Arabic",
    "hi": "Hindi",
}


class TranslationError(RuntimeError):
    """Raised when a provider fails to translate a text."""


def normalize_language(tag: Optional[str]) -> str:
    """Reduce a tag like `zh-CN` to its primary subtag; empty means auto."""
    if not tag:
        return AUTO_DETECT
    return tag.strip().lower().replace("_", "-").split("-", 1)[0] or AUTO_DETECT


class TranslationProvider:
    """Base class: shared argument checks around `_translate`."""

    name = "base"

    async def translate(self, text: str, source_language: Optional[str], target_language: str) -> str:
        target = normalize_language(target_language)
        source = normalize_language(source_language)
        if target == AUTO_DETECT:
            raise TranslationError("A concrete target language is required.")
        if not text or not text.strip() or source == target:
            return text
        return await self._translate(text, source, target)

    async def _translate(self, text: str, source_language: str, target_language: str) -> str:
        raise NotImplementedError


class MockTranslationProvider(TranslationProvider):
    """Dictionary-backed stand-in for a real translation service.

    Known phrases are swapped for their dictionary entry; anything else is
    returned with a `[<lang>] ` marker for non-English targets.
    """

    name = "mock"

    PHRASES: Dict[str, Dict[str, str]] = {
        "en": {"hello": "Hello", "welcome": "Welcome", "thanks": "Thank you", "help": "How can I help you?"},
        "zh": {"hello": "你好", "welcome": "欢迎", "thanks": "谢谢", "help": "我能帮您什么忙?"},
        "es": {"hello": "Hola", "welcome": "Bienvenido", "thanks": "Gracias", "help": "¿Cómo puedo ayudarte?"},
        "fr": {"hello": "Bonjour", "welcome": "Bienvenue", "thanks": "Merci", "help": "Comment puis-je vous aider?"},
    }

    ALIASES: Dict[str, str] = {
        "hello": "hello",
        "hi": "hello",
        "welcome": "welcome",
        "thanks": "thanks",
        "thank you": "thanks",
        "how can i help you?": "help",
        "how can i help you": "help",
    }

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay

    async def _translate(self, text: str, source_language: str, target_language: str) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        key = self.ALIASES.get(text.strip().lower())
        phrases = self.PHRASES.get(target_language, {})
        if key and key in phrases:
            return phrases[key]
        marker = "" if target_language == "en" else f"[{target_language}] "
        return f"{marker}{text}"


class OpenAITranslationProvider(TranslationProvider):
    """Translate chat messages with the OpenAI Responses API."""

    name = "openai"

    SYSTEM_PROMPT = (
        "You translate customer-service chat messages. Translate the user's text "
        "into {target}. Keep the tone and any names, numbers or links unchanged. "
        "Output only the translation, with no quotes or explanations."
    )

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o-mini") -> None:
        if client is None:
            raise ValueError("OpenAI AsyncOpenAI client is required.")
        self.client = client
        self.model = model

    async def _translate(self, text: str, source_language: str, target_language: str) -> str:
        start = time.time()
        target_name = SUPPORTED_LANGUAGES.get(target_language, target_language)
        instructions = self.SYSTEM_PROMPT.format(target=target_name)
        if source_language != AUTO_DETECT:
            source_name = SUPPORTED_LANGUAGES.get(source_language, source_language)
            instructions += f" The source language is {source_name}."

        try:
            response = await self.client.responses.create(
                model=self.model,
                input=[
                    {
                        "type": "message",
                        "role": "system",
                        "content": [{"type": "input_text", "text": instructions}],
                    },
                    {
                        "type": "message",
                        "role": "user",
                        "content": [{"type": "input_text", "text": text}],
                    },
                ],
            )
        except Exception as exc:
            LOGGER.error("OpenAI translation request failed: %s", exc)
            raise TranslationError(f"Translation failed: {exc}") from exc

        translated = (getattr(response, "output_text", None) or "").strip()
        if not translated:
            raise TranslationError("Translation response did not include text.")

        LOGGER.info("Translation %s->%s latency: %.3fs", source_language, target_language, time.time() - start)
        return translated


def build_provider(name: str, *, client: Optional[AsyncOpenAI] = None, model: str = "gpt-4o-mini", delay: float = 0.0) -> TranslationProvider:
    """Return the provider selected by configuration."""
    if name == "openai":
        return OpenAITranslationProvider(client or AsyncOpenAI(), model=model)
    if name == "mock":
        return MockTranslationProvider(delay=delay)
    raise RuntimeError(f"Unknown translation provider: {name!r}")
