"""Route message translation requests over the relay or the HTTP fallback."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

from chat_client.connection import RelayConnectionManager
from chat_client.errors import ChatClientError
from models.chat_models import ConnectionStatus, TranslationStatus
from models.frames import Frame, TranslateFrame, TranslateResultFrame

LOGGER = logging.getLogger(__name__)

TranslationCallback = Callable[[str], None]
ResultListener = Callable[[int, Optional[str], TranslationStatus], None]


class TranslationBackend(Protocol):
    """What the dispatcher needs from the fallback provider and the row store."""

    async def translate(self, text: str, source_language: Optional[str], target_language: str) -> str: ...

    async def update_translation(
        self, message_id: int, status: TranslationStatus, translated_content: Optional[str] = None
    ) -> bool: ...


@dataclass
class TranslationEntry:
    message_id: int
    status: TranslationStatus
    text: Optional[str] = None


@dataclass
class TranslationOutcome:
    """Immediate answer of `TranslationDispatcher.translate`.

    `processing` means the request went over the relay and the result will
    arrive through the registered callback or `wait_for`.
    """

    message_id: int
    status: TranslationStatus
    text: Optional[str] = None


class TranslationDispatcher:
    """Track translation requests by message id and deliver their results.

    Results are cached per message id so that a callback registered after the
    result arrived (a remounted view, for instance) is still served, once,
    on the next loop iteration.
    """

    def __init__(self, relay: RelayConnectionManager, backend: TranslationBackend) -> None:
        self.relay = relay
        self.backend = backend
        self._results: Dict[int, TranslationEntry] = {}
        self._callbacks: Dict[int, TranslationCallback] = {}
        self._waiters: Dict[int, List[asyncio.Future]] = {}
        self._listeners: List[ResultListener] = []
        self._unsubscribe = relay.on_frame(self._handle_frame)

    def close(self) -> None:
        """Detach from the relay and release anyone still waiting."""
        self._unsubscribe()
        for futures in self._waiters.values():
            for future in futures:
                future.cancel()
        self._waiters.clear()
        self._callbacks.clear()

    def get_result(self, message_id: int) -> Optional[TranslationEntry]:
        return self._results.get(message_id)

    def add_result_listener(self, listener: ResultListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unregister() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unregister

    def register_callback(self, message_id: int, callback: TranslationCallback) -> None:
        """Register the callback for a message; a cached result is delivered on the next tick."""
        self._callbacks[message_id] = callback
        entry = self._results.get(message_id)
        if entry is not None and entry.status is TranslationStatus.COMPLETED:
            asyncio.get_running_loop().call_soon(self._deliver_cached, message_id, callback)

    def unregister_callback(self, message_id: int) -> None:
        """Forget the callback. An in-flight relay request is not cancelled."""
        self._callbacks.pop(message_id, None)

    async def wait_for(self, message_id: int, timeout: Optional[float] = None) -> Optional[str]:
        """Wait for a message's translation; returns None when it failed."""
        entry = self._results.get(message_id)
        if entry is not None and entry.status.terminal:
            return entry.text if entry.status is TranslationStatus.COMPLETED else None
        future = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(message_id, []).append(future)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            waiters = self._waiters.get(message_id)
            if waiters and future in waiters:
                waiters.remove(future)
                if not waiters:
                    del self._waiters[message_id]

    async def translate(
        self,
        message_id: int,
        text: str,
        source_language: Optional[str],
        target_language: str,
    ) -> TranslationOutcome:
        """Request a translation for a message.

        Over a connected relay this only sends the request and reports
        `processing`. Otherwise the fallback provider is awaited and the
        result is cached, delivered and persisted before returning.

        A message id is translated at most once: later calls for an id
        already tracked return its current state without sending anything.
        """
        entry = self._results.get(message_id)
        if entry is not None:
            return TranslationOutcome(message_id, entry.status, entry.text)
        # Claimed before the first await so concurrent callers see it.
        self._results[message_id] = TranslationEntry(message_id, TranslationStatus.PENDING)

        if self.relay.get_status() is ConnectionStatus.CONNECTED:
            frame = TranslateFrame(
                source_text=text,
                source_language=source_language or "auto",
                target_language=target_language,
                message_id=message_id,
            )
            if await self.relay.send(frame):
                entry = self._results[message_id]
                if entry.status.can_become(TranslationStatus.PROCESSING):
                    entry.status = TranslationStatus.PROCESSING
                return TranslationOutcome(message_id, entry.status, entry.text)
            LOGGER.info("Relay send failed for message %s; using fallback translation", message_id)

        try:
            translated = await self.backend.translate(text, source_language, target_language)
        except ChatClientError as exc:
            LOGGER.warning("Fallback translation of message %s failed: %s", message_id, exc)
            self._record(message_id, TranslationStatus.ERROR, None)
            return TranslationOutcome(message_id, TranslationStatus.ERROR)

        self._record(message_id, TranslationStatus.COMPLETED, translated)
        await self._persist(message_id, translated)
        return TranslationOutcome(message_id, TranslationStatus.COMPLETED, translated)

    async def _handle_frame(self, frame: Frame) -> None:
        if not isinstance(frame, TranslateResultFrame) or frame.message_id is None:
            return
        message_id = frame.message_id
        if not frame.ok or frame.translated_text is None:
            LOGGER.warning("Relay translation of message %s failed: %s", message_id, frame.error)
            self._record(message_id, TranslationStatus.ERROR, None)
            return
        had_callback = message_id in self._callbacks
        self._record(message_id, TranslationStatus.COMPLETED, frame.translated_text)
        if not had_callback:
            await self._persist(message_id, frame.translated_text)

    def _record(self, message_id: int, status: TranslationStatus, text: Optional[str]) -> None:
        """Cache a terminal result and notify callback, waiters and listeners."""
        previous = self._results.get(message_id)
        if previous is not None and not previous.status.can_become(status):
            LOGGER.debug("Ignoring %s result for message %s already %s", status.value, message_id, previous.status.value)
            return
        self._results[message_id] = TranslationEntry(message_id, status, text)

        if status is TranslationStatus.COMPLETED:
            callback = self._callbacks.pop(message_id, None)
            if callback is not None:
                callback(text)
        for future in self._waiters.pop(message_id, []):
            if not future.done():
                future.set_result(text if status is TranslationStatus.COMPLETED else None)
        for listener in list(self._listeners):
            listener(message_id, text, status)

    def _deliver_cached(self, message_id: int, callback: TranslationCallback) -> None:
        if self._callbacks.get(message_id) is not callback:
            return
        entry = self._results.get(message_id)
        if entry is None or entry.status is not TranslationStatus.COMPLETED:
            return
        del self._callbacks[message_id]
        callback(entry.text)

    async def _persist(self, message_id: int, translated: str) -> None:
        try:
            await self.backend.update_translation(message_id, TranslationStatus.COMPLETED, translated)
        except ChatClientError as exc:
            LOGGER.error("Could not persist translation for message %s: %s", message_id, exc)
