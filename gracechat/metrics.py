"""
Prometheus metrics for the chat API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Exchange outcome counter (result)
- Bot reply counter (category)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: created, invalid_input, not_found, error
chat_exchanges_total = Counter(
    "chat_exchanges_total",
    "Total chat exchange outcomes",
    labelnames=["result"]
)

bot_replies_total = Counter(
    "bot_replies_total",
    "Bot replies by classified category",
    labelnames=["category"]
)

# Default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path (route template when known)
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_exchange_outcome(result: str, category: str | None = None) -> None:
    """
    Record a chat exchange outcome.

    Args:
        result: "created", "invalid_input", "not_found" or "error"
        category: Category of the bot reply, for created exchanges
    """
    chat_exchanges_total.labels(result=result).inc()
    if category is not None:
        bot_replies_total.labels(category=category).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
