"""Merge polled, pushed and locally sent messages into one ordered timeline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set

from chat_client.dispatcher import TranslationDispatcher
from chat_client.errors import ChatClientError, SendError, StoreError
from models.chat_models import SENDER_HOST, SENDER_USER, ChatMessage, TranslationStatus
from models.frames import Frame, NewMessageFrame

LOGGER = logging.getLogger(__name__)

AUTO_LANGUAGE = "auto"

MessageCallback = Callable[[ChatMessage], None]


class MessageStore(Protocol):
    async def list_messages(
        self, session_id: str, since_id: Optional[int] = None, limit: Optional[int] = None
    ) -> List[ChatMessage]: ...

    async def create_message(
        self,
        session_id: str,
        content: str,
        sender: str,
        *,
        original_language: Optional[str] = None,
        target_language: Optional[str] = None,
        translation_status: Optional[TranslationStatus] = None,
    ) -> ChatMessage: ...


@dataclass(eq=False)
class _Subscription:
    session_id: str
    callback: MessageCallback
    last_seen_id: Optional[int] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class MessageSyncEngine:
    """Keep the de-duplicated, ordered message timeline for the view layer.

    Every source of messages (the initial load, polling, relay pushes, and
    messages this client just sent) goes through `ingest`, which drops ids
    already in the timeline. The timeline is ordered by `(created_at, id)`.

    Args:
        store: Row store used for loading, polling and sending.
        dispatcher: Optional translation dispatcher for host messages.
        target_language: Language host messages are translated into;
            None or `auto` disables translation.
        source_language: Language tag recorded on sent messages.
        poll_interval: Seconds between new-message polls per subscription.
        refresh_interval: Seconds between full refetches that pick up
            translation updates.
    """

    def __init__(
        self,
        store: MessageStore,
        dispatcher: Optional[TranslationDispatcher] = None,
        *,
        target_language: Optional[str] = None,
        source_language: str = AUTO_LANGUAGE,
        poll_interval: float = 2.0,
        refresh_interval: float = 10.0,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.target_language = target_language
        self.source_language = source_language
        self.poll_interval = poll_interval
        self.refresh_interval = refresh_interval

        self._messages: Dict[int, ChatMessage] = {}
        self._subscriptions: List[_Subscription] = []
        self._refresh_task: Optional[asyncio.Task] = None
        self._translation_tasks: Set[asyncio.Task] = set()

    @property
    def translates(self) -> bool:
        return bool(self.target_language) and self.target_language != AUTO_LANGUAGE

    @property
    def timeline(self) -> List[ChatMessage]:
        return sorted(self._messages.values(), key=lambda m: m.sort_key)

    def timeline_for(self, session_id: str) -> List[ChatMessage]:
        return [m for m in self.timeline if m.session_id == session_id]

    def __contains__(self, message_id: int) -> bool:
        return message_id in self._messages

    async def load(self, session_id: str) -> List[ChatMessage]:
        """Fetch a session's history once and merge it into the timeline."""
        messages = await self.store.list_messages(session_id)
        self.ingest(messages)
        return self.timeline_for(session_id)

    async def send(self, session_id: str, content: str, is_host: bool = False) -> ChatMessage:
        """Persist a message; host messages are queued for translation right away.

        Raises:
            SendError: the store rejected the write.
        """
        needs_translation = is_host and self.translates
        try:
            message = await self.store.create_message(
                session_id,
                content,
                SENDER_HOST if is_host else SENDER_USER,
                original_language=self.source_language,
                target_language=self.target_language if needs_translation else None,
                translation_status=TranslationStatus.PENDING if needs_translation else None,
            )
        except StoreError as exc:
            raise SendError(f"Message could not be sent: {exc}") from exc

        self.ingest([message], translate=False)
        if needs_translation and self.dispatcher is not None:
            await self.dispatcher.translate(message.id, content, self.source_language, self.target_language)
        return message

    def ingest(self, messages: Iterable[ChatMessage], translate: bool = True) -> List[ChatMessage]:
        """Merge messages into the timeline and announce the ones not seen before."""
        fresh: List[ChatMessage] = []
        for message in messages:
            if message.id in self._messages:
                continue
            self._messages[message.id] = message
            fresh.append(message)
        fresh.sort(key=lambda m: m.sort_key)

        for message in fresh:
            if translate and self._wants_translation(message):
                self._spawn_translation(message)
            for subscription in list(self._subscriptions):
                if subscription.session_id != message.session_id:
                    continue
                try:
                    subscription.callback(message)
                except Exception:
                    LOGGER.exception("New-message subscriber failed for message %s", message.id)
        return fresh

    def subscribe(self, session_id: str, on_new_message: MessageCallback) -> Callable[[], None]:
        """Poll for messages newer than the last one seen; returns the unsubscribe function."""
        known = [m.id for m in self._messages.values() if m.session_id == session_id]
        subscription = _Subscription(session_id, on_new_message, max(known) if known else None)
        subscription.task = asyncio.create_task(self._poll(subscription))
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
            if subscription.task is not None:
                subscription.task.cancel()

        return unsubscribe

    def handle_frame(self, frame: Frame) -> None:
        """Relay frame handler: pushed messages join the same merge path as polling."""
        if not isinstance(frame, NewMessageFrame):
            return
        try:
            message = ChatMessage.from_dict(frame.message)
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Ignoring malformed pushed message: %s", exc)
            return
        self.ingest([message])

    def start_refresh(self, session_id: str) -> None:
        self.stop_refresh()
        self._refresh_task = asyncio.create_task(self._refresh_loop(session_id))

    def stop_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is not None:
            task.cancel()

    async def refresh(self, session_id: str) -> int:
        """Refetch the session and update translation fields in place. Returns the update count."""
        messages = await self.store.list_messages(session_id)
        updated = 0
        unknown = []
        for latest in messages:
            current = self._messages.get(latest.id)
            if current is None:
                unknown.append(latest)
            elif self._merge_translation(current, latest.translated_content, latest.translation_status):
                updated += 1
        if unknown:
            self.ingest(unknown)
        return updated

    def apply_translation(self, message_id: int, text: Optional[str], status: TranslationStatus) -> None:
        """Dispatcher result listener."""
        message = self._messages.get(message_id)
        if message is not None:
            self._merge_translation(message, text, status)

    def display_text(self, message: ChatMessage) -> str:
        """Text to show: the translation of a host message once completed, else the original."""
        if not message.is_host or not self.translates:
            return message.content
        if self.dispatcher is not None:
            entry = self.dispatcher.get_result(message.id)
            if entry is not None and entry.status is TranslationStatus.COMPLETED and entry.text:
                return entry.text
        if message.translation_status is TranslationStatus.COMPLETED and message.translated_content:
            return message.translated_content
        return message.content

    async def close(self) -> None:
        """Cancel polling, then refresh, then any translation requests still running."""
        tasks = []
        for subscription in self._subscriptions:
            if subscription.task is not None:
                subscription.task.cancel()
                tasks.append(subscription.task)
        self._subscriptions.clear()
        if self._refresh_task is not None:
            tasks.append(self._refresh_task)
        self.stop_refresh()
        for task in self._translation_tasks:
            task.cancel()
            tasks.append(task)
        self._translation_tasks.clear()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _poll(self, subscription: _Subscription) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                batch = await self.store.list_messages(subscription.session_id, since_id=subscription.last_seen_id)
            except ChatClientError as exc:
                LOGGER.warning("Polling session %s failed: %s", subscription.session_id, exc)
                continue
            if not batch:
                continue
            newest = max(m.id for m in batch)
            subscription.last_seen_id = max(subscription.last_seen_id or 0, newest)
            self.ingest(batch)

    async def _refresh_loop(self, session_id: str) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh(session_id)
            except ChatClientError as exc:
                LOGGER.warning("Refreshing session %s failed: %s", session_id, exc)

    def _wants_translation(self, message: ChatMessage) -> bool:
        if self.dispatcher is None or not message.is_host or not self.translates:
            return False
        if message.translation_status is not None and message.translation_status.terminal:
            return False
        return self.dispatcher.get_result(message.id) is None

    def _spawn_translation(self, message: ChatMessage) -> None:
        task = asyncio.create_task(
            self.dispatcher.translate(
                message.id, message.content, message.original_language or AUTO_LANGUAGE, self.target_language
            )
        )
        self._translation_tasks.add(task)
        task.add_done_callback(self._translation_tasks.discard)

    @staticmethod
    def _merge_translation(
        message: ChatMessage, text: Optional[str], status: Optional[TranslationStatus]
    ) -> bool:
        if status is None or status is message.translation_status:
            return False
        if message.translation_status is not None and not message.translation_status.can_become(status):
            return False
        message.translation_status = status
        if text is not None:
            message.translated_content = text
        return True
