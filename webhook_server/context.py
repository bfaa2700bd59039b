"""Cancellation token with an optional deadline, handed to ``stop``."""

import threading
import time
from typing import Callable, Optional


class Deadline:
    """Bounds how long a graceful shutdown may wait.

    The token is created and owned by the caller of ``stop``. Servers only read
    it: ``remaining()`` tells them how long they may still wait and ``done()``
    tells them to give up and force-close whatever is left.

    Attributes:
        timeout: Seconds from creation until the deadline, or None for no deadline
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be non-negative")

        self.timeout = timeout
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout
        self._cancelled = threading.Event()

    @classmethod
    def background(cls) -> "Deadline":
        """Token that never expires and is never cancelled unless asked to."""
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None if there is none."""
        if self._cancelled.is_set():
            return 0.0
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def done(self) -> bool:
        """True once the token is cancelled or its deadline has passed."""
        return self.cancelled or self.expired

    def slice(self, interval: float) -> float:
        """Next wait interval, never beyond the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return interval
        return min(interval, remaining)

    def __repr__(self) -> str:
        return f"Deadline(timeout={self.timeout}, remaining={self.remaining()})"
