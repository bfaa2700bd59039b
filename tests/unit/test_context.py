"""Unit tests for the shutdown deadline token."""

import pytest

from webhook_server.context import Deadline


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_remaining_counts_down(clock):
    deadline = Deadline(5, clock=clock)
    assert deadline.remaining() == 5

    clock.now += 2
    assert deadline.remaining() == 3
    assert not deadline.done()


def test_expires_after_timeout(clock):
    deadline = Deadline(1, clock=clock)
    clock.now += 1.5

    assert deadline.expired
    assert deadline.done()
    assert deadline.remaining() == 0.0


def test_background_never_expires(clock):
    deadline = Deadline.background()
    assert deadline.remaining() is None
    assert not deadline.expired
    assert not deadline.done()


def test_cancel_ends_waiting_immediately(clock):
    deadline = Deadline(30, clock=clock)
    deadline.cancel()

    assert deadline.cancelled
    assert deadline.done()
    assert deadline.remaining() == 0.0


def test_cancel_background_token():
    deadline = Deadline.background()
    deadline.cancel()
    assert deadline.done()


def test_slice_never_exceeds_deadline(clock):
    deadline = Deadline(0.02, clock=clock)
    assert deadline.slice(0.05) == pytest.approx(0.02)
    assert Deadline.background().slice(0.05) == 0.05


def test_negative_timeout_rejected():
    with pytest.raises(ValueError):
        Deadline(-1)
