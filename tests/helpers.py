"""Shared helpers for webhook server tests."""

import threading
import time

LOCAL_ADDRESS = "127.0.0.1:0"


def wait_for(condition, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``condition`` until it is true or ``timeout`` passes."""
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        if condition():
            return True
        time.sleep(interval)
    return condition()


def empty_body_handler(data: bytes) -> None:
    """Succeeds on an empty body, fails otherwise."""
    if data:
        raise ValueError("unexpected payload: secret internals")


def start_in_background(server, address: str = LOCAL_ADDRESS) -> threading.Thread:
    """Start ``server`` on a background thread and wait until it is bound."""
    thread = threading.Thread(target=server.start, args=(address,), daemon=True)
    thread.start()
    assert wait_for(lambda: server.address is not None), "server did not bind"
    return thread


class RecordingServer:
    """Webhook server stand-in that counts the calls it receives."""

    def __init__(self, start_error=None, start_delay: float = 0.0):
        self.started = 0
        self.stopped = 0
        self.registered = 0
        self.start_error = start_error
        self.start_delay = start_delay
        self._lock = threading.Lock()

    def start(self, address: str) -> None:
        with self._lock:
            self.started += 1
        if self.start_delay:
            time.sleep(self.start_delay)
        if self.start_error:
            raise self.start_error

    def register_handler(self, path, handler) -> None:
        with self._lock:
            self.registered += 1

    def stop(self, deadline) -> None:
        with self._lock:
            self.stopped += 1
