"""
Prometheus metrics for the message API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Like outcome counter (result)
- Search proxy outcome counter (result)
- Created messages counter

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

# Using default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: liked, already_liked, not_found
like_requests_total = Counter(
    "like_requests_total",
    "Total like outcomes",
    labelnames=["result"]
)

# result: ok, missing_query, upstream_error
search_requests_total = Counter(
    "search_requests_total",
    "Total search proxy outcomes",
    labelnames=["result"]
)

messages_created_total = Counter(
    "messages_created_total",
    "Total messages created"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template when matched (e.g. /messages/{message_id}),
            otherwise the raw request path
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


def record_like_outcome(result: str) -> None:
    like_requests_total.labels(result=result).inc()


def record_search_outcome(result: str) -> None:
    search_requests_total.labels(result=result).inc()


def record_message_created() -> None:
    messages_created_total.inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
