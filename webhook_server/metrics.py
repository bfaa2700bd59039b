"""Prometheus metrics for the webhook server."""

from prometheus_client import Counter, Histogram, start_http_server

REQUESTS = Counter(
    "webhook_server_requests_total",
    "Total number of webhook responses written",
    ["engine", "status"],
)
HANDLER_DURATION = Histogram(
    "webhook_server_handler_duration_seconds",
    "Time spent inside registered path handlers",
    ["engine"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)


def start_metrics_server(port: int = 9090) -> None:
    """Expose the default registry on ``port``.

    Args:
        port: Port number for the metrics endpoint
    """
    start_http_server(port)
