from chat_client.send_guard import DuplicateSendGuard


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_same_content_within_cooldown_is_suppressed():
    clock = FakeClock()
    guard = DuplicateSendGuard(cooldown_ms=2000, clock=clock)

    assert guard.can_send("Hi")
    clock.advance(1.5)
    assert not guard.can_send("Hi")


def test_same_content_after_cooldown_is_allowed():
    clock = FakeClock()
    guard = DuplicateSendGuard(cooldown_ms=2000, clock=clock)

    assert guard.can_send("Hi")
    clock.advance(2.0)
    assert guard.can_send("Hi")


def test_suppressed_attempt_does_not_extend_the_window():
    clock = FakeClock()
    guard = DuplicateSendGuard(cooldown_ms=2000, clock=clock)

    guard.can_send("Hi")
    clock.advance(1.0)
    assert not guard.can_send("Hi")
    clock.advance(1.0)
    assert guard.can_send("Hi")


def test_different_content_is_independent():
    guard = DuplicateSendGuard(clock=FakeClock())

    assert guard.can_send("Hi")
    assert guard.can_send("Hello")
    assert guard.can_send("hi")


def test_old_entries_are_swept():
    clock = FakeClock()
    guard = DuplicateSendGuard(cooldown_ms=1000, clock=clock)
    guard.can_send("a")
    guard.can_send("b")
    assert len(guard) == 2

    clock.advance(6.0)
    guard.can_send("c")

    assert len(guard) == 1
