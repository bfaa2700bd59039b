"""Webhook server configuration module."""

import os
from dataclasses import dataclass
from typing import Any, Dict

ENGINES = ("flask", "aiohttp")

_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """Configuration for the webhook server.

    Attributes:
        address: Listen address as "host:port"
        engine: HTTP engine to serve with, "flask" or "aiohttp"
        shutdown_timeout: Seconds to wait for in-flight requests on stop
        multi_tenant: Wrap the engine so several bots can share it
    """

    address: str = "127.0.0.1:8443"
    engine: str = "flask"
    shutdown_timeout: float = 10.0
    multi_tenant: bool = False

    def __post_init__(self):
        if self.engine not in ENGINES:
            raise ValueError(f"unknown engine {self.engine!r}, expected one of {', '.join(ENGINES)}")
        if self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be non-negative")

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create config from environment variables.

        Environment Variables:
            WEBHOOK_LISTEN_ADDRESS: Optional listen address
            WEBHOOK_ENGINE: Optional engine name
            WEBHOOK_SHUTDOWN_TIMEOUT: Optional shutdown timeout in seconds
            WEBHOOK_MULTI_TENANT: Optional flag, "true" to share the server

        Returns:
            ServerConfig instance

        Raises:
            ValueError: If the engine is unknown or the timeout is invalid
        """
        return cls(
            address=os.getenv("WEBHOOK_LISTEN_ADDRESS", cls.address),
            engine=os.getenv("WEBHOOK_ENGINE", cls.engine).lower(),
            shutdown_timeout=float(os.getenv("WEBHOOK_SHUTDOWN_TIMEOUT", str(cls.shutdown_timeout))),
            multi_tenant=os.getenv("WEBHOOK_MULTI_TENANT", "").lower() in _TRUTHY,
        )

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "ServerConfig":
        """Create a ServerConfig instance from a dictionary.

        Args:
            config_dict: Dictionary containing configuration values

        Returns:
            ServerConfig instance with values from dictionary
        """
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})
