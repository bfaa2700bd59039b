"""Webhook server package."""

from .config import ServerConfig
from .context import Deadline
from .engines import AiohttpWebhookServer, FlaskWebhookServer, create_server
from .exceptions import BindError, BodyReadError, HandlerError, ShutdownError, WebhookServerError
from .multi_tenant import MultiTenantWebhookServer
from .server import PathHandler, ServerState, WebhookServer

__version__ = "1.0.0"

__all__ = [
    "AiohttpWebhookServer",
    "BindError",
    "BodyReadError",
    "Deadline",
    "FlaskWebhookServer",
    "HandlerError",
    "MultiTenantWebhookServer",
    "PathHandler",
    "ServerConfig",
    "ServerState",
    "ShutdownError",
    "WebhookServer",
    "WebhookServerError",
    "create_server",
]
