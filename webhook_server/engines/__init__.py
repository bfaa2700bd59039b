"""HTTP engines implementing the webhook server contract."""

from ..config import ServerConfig
from ..multi_tenant import MultiTenantWebhookServer
from ..server import WebhookServer
from .aiohttp_engine import AiohttpWebhookServer
from .flask_engine import FlaskWebhookServer

ENGINE_CLASSES = {
    "flask": FlaskWebhookServer,
    "aiohttp": AiohttpWebhookServer,
}


def create_server(config: ServerConfig, logger=None) -> WebhookServer:
    """Build the webhook server described by ``config``."""
    server = ENGINE_CLASSES[config.engine](logger=logger)
    if config.multi_tenant:
        return MultiTenantWebhookServer(server)
    return server


__all__ = ["AiohttpWebhookServer", "FlaskWebhookServer", "ENGINE_CLASSES", "create_server"]
