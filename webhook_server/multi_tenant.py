"""Share one webhook server between several independent bots."""

import threading
from typing import Optional

import structlog

from .context import Deadline
from .exceptions import BindError
from .server import PathHandler, WebhookServer

logger = structlog.get_logger(__name__)

POLL_INTERVAL = 0.05


class MultiTenantWebhookServer:
    """Wraps one webhook server so several tenants can share its socket.

    Every tenant may call ``start``, ``register_handler`` and ``stop`` as if it
    owned the server. Only the first ``start`` and the first ``stop`` reach the
    wrapped server; later calls return immediately. Once any tenant has called
    ``stop``, ``start`` is never forwarded again. Handler registrations are
    always forwarded, so tenants must pick disjoint paths.

    Note that the first tenant to call ``stop`` closes the socket for all of
    them. There is no count of tenants still using the server.

    Args:
        server: The webhook server to share
    """

    def __init__(self, server: WebhookServer):
        self.server = server
        self.started = False
        self.stopped = False
        self._lock = threading.Lock()
        self._start_done = threading.Condition(self._lock)
        self._starting = False
        self._stop_deadline: Optional[Deadline] = None

    def start(self, address: str) -> None:
        with self._lock:
            if self.started or self.stopped:
                return
            self.started = True
            self._starting = True

        # Outside the lock: a blocking engine only returns from start on shutdown.
        try:
            self.server.start(address)
            with self._lock:
                late_stop = self._stop_deadline
            if late_stop is not None:
                # A stop arrived before the server was bound and found nothing to close.
                self.server.stop(late_stop)
        except BindError:
            with self._lock:
                self.started = False
            raise
        finally:
            with self._start_done:
                self._starting = False
                self._start_done.notify_all()

    def register_handler(self, path: str, handler: PathHandler) -> None:
        self.server.register_handler(path, handler)

    def stop(self, deadline: Deadline) -> None:
        with self._lock:
            if self.stopped:
                return
            self.stopped = True
            self._stop_deadline = deadline

        logger.info("multi_tenant_server_stopping", server=type(self.server).__name__)
        self.server.stop(deadline)
        # A start claimed just before this stop may still be binding; keep
        # stopping until it has either returned or given up.
        while self._start_pending(deadline):
            self.server.stop(deadline)

    def _start_pending(self, deadline: Deadline) -> bool:
        with self._start_done:
            if self._starting and not deadline.done():
                self._start_done.wait(deadline.slice(POLL_INTERVAL))
            return self._starting and not deadline.done()
