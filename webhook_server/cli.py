import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

import click
import structlog
from dotenv import load_dotenv

from .config import ENGINES, ServerConfig
from .context import Deadline
from .engines import create_server
from .exceptions import BindError, WebhookServerError
from .metrics import start_metrics_server
from .server import PathHandler, WebhookServer

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog for command line use."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper())
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
    )


def load_config(config_path: Optional[Path] = None, **overrides) -> ServerConfig:
    """Load configuration from environment, file and command line, in that order."""
    config = vars(ServerConfig.from_env())

    if config_path and config_path.exists():
        with open(config_path) as f:
            config.update(json.load(f))

    config.update({k: v for k, v in overrides.items() if v is not None})
    return ServerConfig.from_dict(config)


def logging_handler(path: str) -> PathHandler:
    """Handler that only logs what it receives."""

    def handle(data: bytes) -> None:
        logger.info("webhook_payload_received", path=path, size=len(data))

    return handle


def run_server(server: WebhookServer, config: ServerConfig, stop_event: threading.Event) -> None:
    """Serve until ``stop_event`` is set, then stop within the shutdown timeout.

    Raises:
        BindError: If the server could not bind its address
    """
    errors = []

    def serve():
        try:
            server.start(config.address)
        except BindError as e:
            errors.append(e)
            stop_event.set()

    thread = threading.Thread(target=serve, name="webhook-server", daemon=True)
    thread.start()
    stop_event.wait()

    if errors:
        raise errors[0]

    server.stop(Deadline(config.shutdown_timeout))
    thread.join(config.shutdown_timeout)


@click.group()
@click.option("--log-level", default="INFO", help="Logging level")
@click.option("--json-logs", is_flag=True, help="Render logs as JSON")
def cli(log_level, json_logs):
    """Webhook Server CLI"""
    configure_logging(log_level, json_logs)


@cli.command()
@click.option(
    "--config", "-c", type=click.Path(exists=True, path_type=Path), help="Path to JSON config file"
)
@click.option("--address", "-a", help="Listen address as host:port")
@click.option("--engine", "-e", type=click.Choice(ENGINES), help="HTTP engine")
@click.option("--shutdown-timeout", type=float, help="Seconds to wait for in-flight requests")
@click.option("--path", "paths", multiple=True, default=("/",), help="Path to accept webhooks on")
@click.option("--metrics-port", type=int, envvar="METRICS_PORT", help="Expose Prometheus metrics")
def serve(config, address, engine, shutdown_timeout, paths, metrics_port):
    """Receive webhooks and log their payloads."""
    try:
        cfg = load_config(
            config, address=address, engine=engine, shutdown_timeout=shutdown_timeout
        )
    except (ValueError, json.JSONDecodeError) as e:
        click.echo(f"Error loading config: {str(e)}", err=True)
        sys.exit(2)

    server = create_server(cfg)
    for path in paths:
        server.register_handler(path, logging_handler(path))

    if metrics_port:
        start_metrics_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)

    stop_event = threading.Event()

    def request_stop(signum, frame):
        logger.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    click.echo(f"Serving webhooks on {cfg.address} ({cfg.engine}), paths: {', '.join(paths)}")
    try:
        run_server(server, cfg, stop_event)
    except WebhookServerError as e:
        click.echo(f"Error: {str(e)}", err=True)
        sys.exit(1)


def main():
    load_dotenv()
    cli()


if __name__ == "__main__":
    main()
