"""Request lifecycle helpers shared by the engine adapters.

Both engines follow the same steps for every request: resolve the handler for
the exact path, reject anything but POST, read the body, run the handler and
map its outcome to a status code. The pieces that do not depend on the engine
live here.
"""

import threading
import time
from dataclasses import dataclass
from http import HTTPStatus
from typing import Dict, Optional, Tuple

from .context import Deadline
from .exceptions import BindError, HandlerError
from .metrics import HANDLER_DURATION, REQUESTS
from .server import PathHandler

ALLOWED_METHOD = "POST"


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of a single handler invocation."""

    error: Optional[HandlerError] = None

    @classmethod
    def success(cls) -> "HandlerResult":
        return cls()

    @classmethod
    def failure(cls, error: HandlerError) -> "HandlerResult":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


class HandlerRegistry:
    """Thread-safe mapping of exact request paths to handlers."""

    def __init__(self):
        self._handlers: Dict[str, PathHandler] = {}
        self._lock = threading.Lock()

    def register(self, path: str, handler: PathHandler) -> None:
        with self._lock:
            self._handlers[path] = handler

    def get(self, path: str) -> Optional[PathHandler]:
        with self._lock:
            return self._handlers.get(path)

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._handlers

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)


class InFlightTracker:
    """Counts requests currently inside the lifecycle."""

    def __init__(self):
        self._count = 0
        self._cond = threading.Condition()

    def __enter__(self) -> "InFlightTracker":
        with self._cond:
            self._count += 1
        return self

    def __exit__(self, *exc_info) -> None:
        with self._cond:
            self._count -= 1
            if self._count == 0:
                self._cond.notify_all()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def wait_idle(self, deadline: Deadline, poll_interval: float = 0.05) -> bool:
        """Block until no request is in flight or the deadline is done.

        Returns:
            bool: True if all in-flight requests finished
        """
        with self._cond:
            while self._count:
                if deadline.done():
                    return False
                self._cond.wait(deadline.slice(poll_interval))
            return True


def is_allowed_method(method: str) -> bool:
    return method.upper() == ALLOWED_METHOD


def invoke_handler(handler: PathHandler, path: str, body: bytes, engine: str) -> HandlerResult:
    """Run ``handler`` and turn whatever it raises into a failed result."""
    start_time = time.perf_counter()
    try:
        handler(body)
    except Exception as e:
        return HandlerResult.failure(HandlerError(path, e))
    finally:
        HANDLER_DURATION.labels(engine=engine).observe(time.perf_counter() - start_time)
    return HandlerResult.success()


def status_for(result: HandlerResult) -> HTTPStatus:
    if result.ok:
        return HTTPStatus.OK
    return HTTPStatus.INTERNAL_SERVER_ERROR


def record_response(engine: str, status: HTTPStatus) -> None:
    REQUESTS.labels(engine=engine, status=str(int(status))).inc()


def log_handler_failure(log, result: HandlerResult) -> None:
    error = result.error
    log.error(
        "webhook_handler_failed",
        path=error.path,
        error=str(error.cause),
        error_type=type(error.cause).__name__,
    )


def parse_address(address: str) -> Tuple[str, int]:
    """Split a "host:port" address.

    An empty host is returned as "" and means every interface. IPv6 hosts may
    be bracketed.

    Raises:
        BindError: If the port is missing or not a valid port number
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise BindError(f"missing port in address {address!r}", address)

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        port_number = int(port)
    except ValueError:
        raise BindError(f"invalid port in address {address!r}", address) from None

    if not 0 <= port_number <= 65535:
        raise BindError(f"port out of range in address {address!r}", address)

    return host, port_number
