"""Client side of the realtime translation relay.

`RelayConnectionManager` owns the one websocket a chat session uses to talk
to `/ws/translate`. It performs the `connect` handshake, keeps the socket
alive with heartbeats, reconnects with exponential backoff after failures,
and fans decoded frames out to registered handlers.

Status transitions::

    disconnected --connect()--> connecting
    connecting   --socket opens--> connected      (counter reset, handshake sent)
    connecting   --open fails--> failed           (reconnect scheduled)
    connected    --socket drops--> disconnected   (reconnect scheduled)
    any          --close()--> disconnected        (no reconnect)

After more than `max_attempts` consecutive failures the status stays
`failed` until the next explicit `connect()`.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from models.chat_models import ConnectionStatus
from models.frames import (
    ConnectFrame,
    Frame,
    FrameError,
    HeartbeatFrame,
    StatusFrame,
    UnknownFrame,
    encode_frame,
    parse_frame,
)

LOGGER = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionStatus], None]
FrameHandler = Callable[[Frame], Any]
Connector = Callable[[str], Awaitable[Any]]

MAX_RECONNECT_ATTEMPTS = 5
BASE_DELAY_MS = 1000
MAX_DELAY_MS = 30000
HEARTBEAT_INTERVAL = 30.0


def backoff_delay_ms(attempt: int, base_ms: int = BASE_DELAY_MS, cap_ms: int = MAX_DELAY_MS) -> int:
    """Return `min(base * 2**attempt, cap)` in milliseconds."""
    return min(base_ms * 2 ** attempt, cap_ms)


class RelayConnectionManager:
    """Manage the relay websocket for one active chat session.

    Args:
        url: Relay endpoint, e.g. `ws://localhost:8000/ws/translate`.
        connector: Coroutine factory opening a socket for a URL. Defaults to
            `websockets.connect`.
        sleep: Coroutine used to wait out reconnect backoff delays.
        heartbeat_interval: Seconds between heartbeat frames.
        max_attempts: Consecutive failures tolerated before giving up.
    """

    def __init__(
        self,
        url: str,
        *,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ) -> None:
        self.url = url
        self.heartbeat_interval = heartbeat_interval
        self.max_attempts = max_attempts
        self._connector = connector or websockets.connect
        self._sleep = sleep

        self._status = ConnectionStatus.DISCONNECTED
        self._status_listeners: List[StatusListener] = []
        self._frame_handlers: List[FrameHandler] = []

        self._socket = None
        self._session_id: Optional[str] = None
        self._language: Optional[str] = None
        self._attempts = 0

        self._run_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def language(self) -> Optional[str]:
        return self._language

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def get_status(self) -> ConnectionStatus:
        return self._status

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; it is called now with the current status and on every transition."""
        self._status_listeners.append(listener)
        listener(self._status)

        def unregister() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return unregister

    def on_frame(self, handler: FrameHandler) -> Callable[[], None]:
        """Register a handler for decoded inbound frames (sync or async)."""
        self._frame_handlers.append(handler)

        def unregister() -> None:
            if handler in self._frame_handlers:
                self._frame_handlers.remove(handler)

        return unregister

    async def connect(self, session_id: str, preferred_language: Optional[str] = None) -> None:
        """Attach the relay to a session.

        A no-op when already connecting or connected to the same session with
        the same language. Any other existing connection is closed first.
        """
        if (
            session_id == self._session_id
            and preferred_language == self._language
            and self._status in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED)
        ):
            return
        if self._session_id is not None or self._run_task is not None or self.reconnect_pending:
            await self.close()

        self._session_id = session_id
        self._language = preferred_language
        self._attempts = 0
        self._start()

    async def close(self) -> None:
        """Tear down the socket and all timers without scheduling a reconnect."""
        self._session_id = None
        self.cancel_timers()

        task, self._run_task = self._run_task, None
        socket, self._socket = self._socket, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if socket is not None:
            try:
                await socket.close()
            except (OSError, WebSocketException) as exc:
                LOGGER.debug("Error while closing relay socket: %s", exc)

        self._language = None
        self._attempts = 0
        self._set_status(ConnectionStatus.DISCONNECTED)

    def cancel_timers(self) -> None:
        """Cancel the heartbeat and any pending reconnect, leaving the socket as is."""
        self._stop_heartbeat()
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def send(self, frame: Frame) -> bool:
        """Send a frame if the socket is open. Returns False instead of raising."""
        socket = self._socket
        if socket is None or self._status is not ConnectionStatus.CONNECTED:
            return False
        try:
            await socket.send(encode_frame(frame))
        except (ConnectionClosed, OSError) as exc:
            LOGGER.warning("Relay send of %r failed: %s", frame.action, exc)
            return False
        return True

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        LOGGER.debug("Relay status %s -> %s", self._status.value, status.value)
        self._status = status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                LOGGER.exception("Relay status listener failed")

    def _start(self) -> None:
        self._set_status(ConnectionStatus.CONNECTING)
        self._run_task = asyncio.create_task(self._run(self._session_id, self._language))

    async def _run(self, session_id: str, language: Optional[str]) -> None:
        task = asyncio.current_task()
        try:
            socket = await self._connector(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            LOGGER.warning("Relay connection to %s failed: %s", self.url, exc)
            if self._run_task is task:
                self._run_task = None
                self._on_connect_failure()
            return

        self._socket = socket
        self._attempts = 0
        self._set_status(ConnectionStatus.CONNECTED)
        await self.send(ConnectFrame(session_id=session_id, user_language=language))
        self._start_heartbeat()

        try:
            async for raw in socket:
                await self._dispatch(raw)
        except (ConnectionClosed, OSError) as exc:
            LOGGER.info("Relay socket for session %s dropped: %s", session_id, exc)
        finally:
            if self._run_task is task:
                self._stop_heartbeat()
            if self._socket is socket:
                self._socket = None

        if self._run_task is not task:
            # Closed or replaced by a newer connection while this one was running.
            return
        self._run_task = None
        self._set_status(ConnectionStatus.DISCONNECTED)
        if self._session_id is not None:
            # A drop after a successful open starts a new backoff cycle.
            self._schedule_reconnect(backoff_delay_ms(self._attempts))

    def _on_connect_failure(self) -> None:
        self._set_status(ConnectionStatus.FAILED)
        self._attempts += 1
        if self._attempts > self.max_attempts:
            LOGGER.error("Relay gave up after %d reconnect attempts", self.max_attempts)
            return
        self._schedule_reconnect(backoff_delay_ms(self._attempts))

    def _schedule_reconnect(self, delay_ms: int) -> None:
        LOGGER.info("Relay reconnect in %d ms (attempt %d)", delay_ms, self._attempts)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms))

    async def _reconnect_after(self, delay_ms: int) -> None:
        await self._sleep(delay_ms / 1000)
        self._reconnect_task = None
        if self._session_id is not None:
            self._start()

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if not await self.send(HeartbeatFrame()):
                LOGGER.debug("Heartbeat could not be sent; stopping heartbeat")
                self._heartbeat_task = None
                return

    async def _dispatch(self, raw: Any) -> None:
        try:
            frame = parse_frame(raw)
        except FrameError as exc:
            LOGGER.warning("Ignoring malformed relay frame: %s", exc)
            return
        if isinstance(frame, UnknownFrame):
            LOGGER.warning("Ignoring relay frame with unknown action %r", frame.action)
            return
        if isinstance(frame, HeartbeatFrame):
            return
        if isinstance(frame, StatusFrame):
            log = LOGGER.warning if frame.status == "error" else LOGGER.info
            log("Relay %s: %s %s", frame.action, frame.status, frame.message or "")

        for handler in list(self._frame_handlers):
            try:
                result = handler(frame)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                LOGGER.exception("Relay frame handler failed for %r", frame.action)
