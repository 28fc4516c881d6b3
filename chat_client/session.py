"""Session-scoped wiring of the relay, dispatcher, sync engine and send guard."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from chat_client.api import ChatApiClient
from chat_client.connection import Connector, RelayConnectionManager
from chat_client.dispatcher import TranslationDispatcher
from chat_client.send_guard import DuplicateSendGuard
from chat_client.sync import MessageCallback, MessageSyncEngine
from models.chat_models import ChatMessage, ConnectionStatus

LOGGER = logging.getLogger(__name__)


class ChatSessionContext:
    """Everything one open chat session needs, with an explicit lifecycle.

    Build it with `create()` when the visitor enters a session and call
    `dispose()` when they leave or switch sessions. Nothing here is shared
    between sessions.
    """

    def __init__(
        self,
        api: ChatApiClient,
        relay: RelayConnectionManager,
        session_id: str,
        preferred_language: Optional[str] = None,
        *,
        poll_interval: float = 2.0,
        refresh_interval: float = 10.0,
        cooldown_ms: float = 2000,
    ) -> None:
        self.api = api
        self.relay = relay
        self.session_id = session_id
        self.preferred_language = preferred_language
        self.dispatcher = TranslationDispatcher(relay, api)
        self.engine = MessageSyncEngine(
            api,
            self.dispatcher,
            target_language=preferred_language,
            poll_interval=poll_interval,
            refresh_interval=refresh_interval,
        )
        self.guard = DuplicateSendGuard(cooldown_ms=cooldown_ms)
        self._cleanups: List[Callable[[], None]] = [
            self.dispatcher.add_result_listener(self.engine.apply_translation),
            relay.on_frame(self.engine.handle_frame),
        ]
        self._disposed = False

    @classmethod
    async def create(
        cls,
        api: ChatApiClient,
        relay_url: str,
        session_id: str,
        preferred_language: Optional[str] = None,
        *,
        connector: Optional[Connector] = None,
        **options,
    ) -> "ChatSessionContext":
        """Connect the relay, load history and start the periodic refresh."""
        relay = RelayConnectionManager(relay_url, connector=connector)
        context = cls(api, relay, session_id, preferred_language, **options)
        await relay.connect(session_id, preferred_language)
        await context.engine.load(session_id)
        context.engine.start_refresh(session_id)
        return context

    @property
    def messages(self) -> List[ChatMessage]:
        return self.engine.timeline_for(self.session_id)

    @property
    def status(self) -> ConnectionStatus:
        return self.relay.get_status()

    def on_status_change(self, listener: Callable[[ConnectionStatus], None]) -> Callable[[], None]:
        unregister = self.relay.on_status_change(listener)
        self._cleanups.append(unregister)
        return unregister

    def subscribe(self, on_new_message: MessageCallback) -> Callable[[], None]:
        unsubscribe = self.engine.subscribe(self.session_id, on_new_message)
        self._cleanups.append(unsubscribe)
        return unsubscribe

    async def send(self, content: str, is_host: bool = False) -> Optional[ChatMessage]:
        """Send a message unless the same text was just sent.

        Returns None when the duplicate-send guard suppresses the message.
        Raises SendError when the store write fails.
        """
        if not content.strip():
            return None
        if not self.guard.can_send(content):
            LOGGER.info("Suppressed duplicate send in session %s", self.session_id)
            return None
        return await self.engine.send(self.session_id, content, is_host)

    def display_text(self, message: ChatMessage) -> str:
        return self.engine.display_text(message)

    async def dispose(self) -> None:
        """Stop heartbeat, pending reconnect, polling and refresh, then close the socket."""
        if self._disposed:
            return
        self._disposed = True
        self.relay.cancel_timers()
        await self.engine.close()
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups.clear()
        self.dispatcher.close()
        await self.relay.close()
