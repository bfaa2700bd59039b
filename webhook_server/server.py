"""Webhook server contract shared by every engine."""

from enum import Enum
from typing import Callable, Protocol, runtime_checkable

from .context import Deadline

# Receives the raw request body. Returning means success, raising means failure.
PathHandler = Callable[[bytes], None]


class ServerState(Enum):
    """Lifecycle of a single server instance."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@runtime_checkable
class WebhookServer(Protocol):
    """Contract implemented by every webhook engine.

    Engines share no base implementation. Anything providing these three
    methods can be handed to ``MultiTenantWebhookServer`` or used directly.
    """

    def start(self, address: str) -> None:
        """Bind ``address`` ("host:port") and begin accepting connections.

        Raises:
            BindError: If the address is malformed, unavailable, or the server
                is not idle
        """
        ...

    def register_handler(self, path: str, handler: PathHandler) -> None:
        """Route POST requests on exactly ``path`` to ``handler``.

        Registering the same path again replaces the previous handler.
        """
        ...

    def stop(self, deadline: Deadline) -> None:
        """Gracefully shut down, waiting for in-flight requests until ``deadline``.

        A no-op on servers that are not running.

        Raises:
            ShutdownError: If the engine fails to release its resources
        """
        ...
