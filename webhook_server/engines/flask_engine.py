"""Blocking webhook server: a Flask app served by werkzeug's threaded WSGI server."""

import socket
import threading
from http import HTTPStatus
from typing import Optional, Set, Tuple

import structlog
from flask import Flask, Response, request
from werkzeug.exceptions import HTTPException, NotFound
from werkzeug.serving import ThreadedWSGIServer, WSGIRequestHandler

from ..context import Deadline
from ..exceptions import BindError, BodyReadError, ShutdownError
from ..lifecycle import (
    HandlerRegistry,
    InFlightTracker,
    invoke_handler,
    is_allowed_method,
    log_handler_failure,
    parse_address,
    record_response,
    status_for,
)
from ..server import PathHandler, ServerState

ENGINE = "flask"

ENDPOINT = "webhook"


class _TrackingRequestHandler(WSGIRequestHandler):
    """Counts a request as in flight from parsed request line to written response."""

    def run_wsgi(self) -> None:
        with self.server.in_flight:
            super().run_wsgi()


class _TrackingWSGIServer(ThreadedWSGIServer):
    """Threaded WSGI server that remembers its open connections.

    Connections are shut down explicitly on stop so that idle keep-alive
    connections and requests running past the deadline do not outlive it.
    """

    daemon_threads = True
    block_on_close = False

    def __init__(self, sock: socket.socket, app: Flask, in_flight: InFlightTracker):
        host, port = sock.getsockname()[:2]
        self.in_flight = in_flight
        self._connections: Set[socket.socket] = set()
        self._connections_lock = threading.Lock()
        super().__init__(host, port, app, handler=_TrackingRequestHandler, fd=sock.fileno())

    def process_request(self, request, client_address):
        with self._connections_lock:
            self._connections.add(request)
        super().process_request(request, client_address)

    def shutdown_request(self, request):
        with self._connections_lock:
            self._connections.discard(request)
        super().shutdown_request(request)

    def close_connections(self) -> int:
        """Force-close every connection still open. Returns how many were closed.

        Sockets are only shut down here; the thread owning each connection
        closes the descriptor once its request handler returns.
        """
        with self._connections_lock:
            connections = list(self._connections)

        for conn in connections:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        return len(connections)


class FlaskWebhookServer:
    """Webhook server on Flask and werkzeug.

    ``start`` serves on the calling thread until ``stop`` is called from another
    thread, so callers usually run it on a dedicated background thread. Each
    request is handled on its own thread.

    Args:
        app: Optional Flask app to mount the webhook routes on
        logger: Optional structlog logger
    """

    def __init__(self, app: Optional[Flask] = None, logger=None):
        self.app = app or Flask(__name__)
        self.logger = logger or structlog.get_logger(__name__)
        self.handlers = HandlerRegistry()
        self._in_flight = InFlightTracker()
        self._state = ServerState.IDLE
        self._lock = threading.Lock()
        self._server: Optional[_TrackingWSGIServer] = None

        # Rules without a method list match every method, so the app's own
        # error handlers stay untouched and the method check happens in _dispatch.
        for rule, defaults in (("/", {"path": ""}), ("/<path:path>", None)):
            self.app.url_map.add(self.app.url_rule_class(rule, endpoint=ENDPOINT, defaults=defaults))
        self.app.view_functions[ENDPOINT] = self._dispatch

    @property
    def state(self) -> ServerState:
        with self._lock:
            return self._state

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port) while running."""
        with self._lock:
            if self._server is None:
                return None
            return self._server.server_address[:2]

    def start(self, address: str) -> None:
        with self._lock:
            try:
                if self._state is not ServerState.IDLE:
                    raise BindError(f"server is already {self._state.value}", address)
                self._server = self._bind(address)
            except BindError as e:
                self.logger.error("webhook_server_bind_failed", engine=ENGINE, address=address, error=str(e))
                raise
            self._state = ServerState.RUNNING
            server = self._server

        self.logger.info("webhook_server_started", engine=ENGINE, address=address, port=server.port)
        server.serve_forever()

    def register_handler(self, path: str, handler: PathHandler) -> None:
        self.handlers.register(path, handler)
        self.logger.debug("webhook_handler_registered", engine=ENGINE, path=path)

    def stop(self, deadline: Deadline) -> None:
        with self._lock:
            if self._state is not ServerState.RUNNING:
                return
            self._state = ServerState.STOPPING
            server = self._server

        self.logger.info("webhook_server_stopping", engine=ENGINE, in_flight=self._in_flight.count)
        try:
            server.shutdown()
            if not self._in_flight.wait_idle(deadline):
                self.logger.warning(
                    "webhook_server_shutdown_deadline_exceeded",
                    engine=ENGINE,
                    in_flight=self._in_flight.count,
                )
            server.close_connections()
            server.server_close()
        except OSError as e:
            raise ShutdownError(f"failed to stop webhook server: {e}") from e
        finally:
            with self._lock:
                self._state = ServerState.STOPPED

        self.logger.info("webhook_server_stopped", engine=ENGINE)

    def _bind(self, address: str) -> _TrackingWSGIServer:
        host, port = parse_address(address)
        # An empty host listens on every interface, IPv6 included where supported.
        dualstack = not host and socket.has_dualstack_ipv6()
        family = socket.AF_INET6 if dualstack or ":" in host else socket.AF_INET
        try:
            # werkzeug exits the process on bind errors, so bind here and hand it the fd.
            with socket.create_server((host, port), family=family, dualstack_ipv6=dualstack) as sock:
                return _TrackingWSGIServer(sock, self.app, self._in_flight)
        except OSError as e:
            raise BindError(f"failed to bind {address}: {e}", address) from e

    def _dispatch(self, path: str) -> Response:
        handler = self.handlers.get(request.path)
        if handler is None:
            raise NotFound()

        if not is_allowed_method(request.method):
            return self._respond(HTTPStatus.METHOD_NOT_ALLOWED)

        try:
            body = self._read_body()
        except BodyReadError as e:
            self.logger.warning("webhook_request_body_read_failed", engine=ENGINE, path=request.path, error=str(e))
            return self._respond(HTTPStatus.INTERNAL_SERVER_ERROR)

        result = invoke_handler(handler, request.path, body, ENGINE)
        if not result.ok:
            log_handler_failure(self.logger, result)
        return self._respond(status_for(result))

    @staticmethod
    def _read_body() -> bytes:
        try:
            return request.get_data(cache=False)
        except (HTTPException, OSError, ValueError) as e:
            raise BodyReadError(str(e)) from e

    @staticmethod
    def _respond(status: HTTPStatus) -> Response:
        record_response(ENGINE, status)
        return Response(status=int(status))
