"""Event-loop webhook server on aiohttp."""

import asyncio
import threading
from concurrent.futures import Future
from http import HTTPStatus
from typing import Optional, Tuple

import structlog
from aiohttp import ClientPayloadError, web
from aiohttp.http_exceptions import HttpProcessingError

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

ENGINE = "aiohttp"

POLL_INTERVAL = 0.05
FORCE_CLOSE_TIMEOUT = 0.1


class AiohttpWebhookServer:
    """Webhook server on an aiohttp application.

    The server runs its own asyncio event loop on a background thread.
    ``start`` returns as soon as the listening socket is bound; the embedding
    application is responsible for keeping the process alive.

    Handlers are plain callables and run on the loop's default executor so a
    slow handler does not stall other requests. Request bodies are read in
    full whatever the application's ``client_max_size`` says.

    Args:
        app: Optional aiohttp application to mount the webhook route on
        logger: Optional structlog logger
    """

    def __init__(self, app: Optional[web.Application] = None, logger=None):
        self.app = app or web.Application()
        self.logger = logger or structlog.get_logger(__name__)
        self.handlers = HandlerRegistry()
        self._in_flight = InFlightTracker()
        self._state = ServerState.IDLE
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

        self.app.router.add_route("*", "/{path:.*}", self.dispatch)

    @property
    def state(self) -> ServerState:
        with self._lock:
            return self._state

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port) while running."""
        with self._lock:
            if self._runner is None or not self._runner.addresses:
                return None
            return tuple(self._runner.addresses[0][:2])

    def start(self, address: str) -> None:
        with self._lock:
            try:
                if self._state is not ServerState.IDLE:
                    raise BindError(f"server is already {self._state.value}", address)
                host, port = parse_address(address)
                self._spawn_loop()
                try:
                    self._run(self._serve(host, port)).result()
                except OSError as e:
                    self._close_loop()
                    raise BindError(f"failed to bind {address}: {e}", address) from e
            except BindError as e:
                self.logger.error("webhook_server_bind_failed", engine=ENGINE, address=address, error=str(e))
                raise
            self._state = ServerState.RUNNING
            port = self._runner.addresses[0][1]

        self.logger.info("webhook_server_started", engine=ENGINE, address=address, port=port)

    def register_handler(self, path: str, handler: PathHandler) -> None:
        self.handlers.register(path, handler)
        self.logger.debug("webhook_handler_registered", engine=ENGINE, path=path)

    def stop(self, deadline: Deadline) -> None:
        with self._lock:
            if self._state is not ServerState.RUNNING:
                return
            self._state = ServerState.STOPPING

        self.logger.info("webhook_server_stopping", engine=ENGINE, in_flight=self._in_flight.count)
        try:
            drained = self._run(self._shutdown(deadline)).result()
            if not drained:
                self.logger.warning(
                    "webhook_server_shutdown_deadline_exceeded",
                    engine=ENGINE,
                    in_flight=self._in_flight.count,
                )
        except (OSError, RuntimeError) as e:
            raise ShutdownError(f"failed to stop webhook server: {e}") from e
        finally:
            self._close_loop()
            with self._lock:
                self._runner = None
                self._site = None
                self._state = ServerState.STOPPED

        self.logger.info("webhook_server_stopped", engine=ENGINE)

    async def dispatch(self, req: web.Request) -> web.StreamResponse:
        """Request handler mounted on every path of the application."""
        handler = self.handlers.get(req.path)
        if handler is None:
            raise web.HTTPNotFound()

        with self._in_flight:
            if not is_allowed_method(req.method):
                return self._respond(HTTPStatus.METHOD_NOT_ALLOWED)

            try:
                body = await self._read_body(req)
            except BodyReadError as e:
                self.logger.warning("webhook_request_body_read_failed", engine=ENGINE, path=req.path, error=str(e))
                return self._respond(HTTPStatus.INTERNAL_SERVER_ERROR)

            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, invoke_handler, handler, req.path, body, ENGINE)
            if not result.ok:
                log_handler_failure(self.logger, result)
            return self._respond(status_for(result))

    @staticmethod
    async def _read_body(req: web.Request) -> bytes:
        # Read the stream directly: Request.read enforces client_max_size.
        try:
            return await req.content.read()
        except (HttpProcessingError, ClientPayloadError, OSError, asyncio.IncompleteReadError) as e:
            raise BodyReadError(str(e)) from e

    @staticmethod
    def _respond(status: HTTPStatus) -> web.Response:
        record_response(ENGINE, status)
        return web.Response(status=int(status))

    async def _serve(self, host: str, port: int) -> None:
        # In-flight handlers are drained in _shutdown; whatever the runner still
        # finds after that is past the deadline and gets cancelled almost at once.
        runner = web.AppRunner(self.app, handle_signals=False, shutdown_timeout=FORCE_CLOSE_TIMEOUT)
        await runner.setup()
        site = web.TCPSite(runner, host or None, port)
        try:
            await site.start()
        except BaseException:
            await runner.cleanup()
            raise
        self._runner = runner
        self._site = site

    async def _shutdown(self, deadline: Deadline) -> bool:
        await self._site.stop()

        drained = True
        while self._in_flight.count:
            if deadline.done():
                drained = False
                break
            await asyncio.sleep(deadline.slice(POLL_INTERVAL))

        await self._runner.cleanup()
        return drained

    def _spawn_loop(self) -> None:
        loop = asyncio.new_event_loop()
        thread = threading.Thread(
            target=self._run_loop,
            args=(loop,),
            name="aiohttp-webhook-server",
            daemon=True,
        )
        thread.start()
        self._loop = loop
        self._thread = thread

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        loop.run_forever()

    def _run(self, coro) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def _close_loop(self) -> None:
        loop, thread = self._loop, self._thread
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()
        self._loop = None
        self._thread = None
