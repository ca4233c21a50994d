"""Prometheus series exported at ``/metrics``.

All series live in the default registry next to prometheus_client's
process collectors. ``path`` and ``prefix`` labels only ever hold a route
prefix, a reserved path, or ``unmatched``, so cardinality is bounded by
configuration rather than by traffic.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Inbound latency is dominated by the upstream, which may stream for
# minutes (REQUEST_TIMEOUT defaults to an hour).
_LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0)

HTTP_REQUESTS_TOTAL = Counter(
    "http_server_requests_total",
    "Requests served, by method, route label and status.",
    ["method", "path", "status"],
)
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_server_request_duration_seconds",
    "Time from request arrival to response, by method and route label.",
    ["method", "path"],
    buckets=_LATENCY_BUCKETS,
)
HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "http_server_requests_in_flight",
    "Requests currently being handled.",
)

PROXY_UPSTREAM_REQUESTS_TOTAL = Counter(
    "proxy_upstream_requests_total",
    "Proxied requests by route prefix and outcome (ok or an error kind).",
    ["prefix", "outcome"],
)
PROXY_UPSTREAM_DURATION_SECONDS = Histogram(
    "proxy_upstream_duration_seconds",
    "Time spent on the upstream exchange, body read included.",
    ["prefix"],
    buckets=_LATENCY_BUCKETS,
)


def record_upstream(prefix: str, outcome: str, duration: float | None = None) -> None:
    """Count one pipeline outcome; ``duration`` only when the upstream was called."""
    PROXY_UPSTREAM_REQUESTS_TOTAL.labels(prefix=prefix, outcome=outcome).inc()
    if duration is not None:
        PROXY_UPSTREAM_DURATION_SECONDS.labels(prefix=prefix).observe(duration)


def metrics_text() -> tuple[bytes, str]:
    """Exposition body and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
