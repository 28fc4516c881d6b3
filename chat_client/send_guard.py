"""Accidental double-submit protection for the message input."""

import time
from typing import Callable, Dict


class DuplicateSendGuard:
    """Suppress identical content submitted again within a cooldown window.

    Entries are keyed by the exact content string. Expiry is lazy: every
    `can_send` call sweeps entries older than five cooldown windows.
    """

    SWEEP_FACTOR = 5

    def __init__(self, cooldown_ms: float = 2000, clock: Callable[[], float] = time.monotonic) -> None:
        self.cooldown_ms = cooldown_ms
        self._clock = clock
        self._last_sent: Dict[str, float] = {}

    def can_send(self, content: str) -> bool:
        now = self._clock() * 1000
        horizon = now - self.cooldown_ms * self.SWEEP_FACTOR
        for key in [k for k, sent_at in self._last_sent.items() if sent_at < horizon]:
            del self._last_sent[key]

        last = self._last_sent.get(content)
        if last is not None and now - last < self.cooldown_ms:
            return False
        self._last_sent[content] = now
        return True

    def __len__(self) -> int:
        return len(self._last_sent)
