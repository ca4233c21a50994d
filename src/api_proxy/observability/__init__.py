"""Logging, metrics and request correlation for api-proxy.

``create_app`` installs the middleware; CLI and worker start-up call
``configure_logging`` once per process.
"""

from .logging import configure_logging, get_logger, request_id_ctx
from .metrics import metrics_text, record_upstream
from .middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
    route_label,
)

__all__ = [
    "MetricsMiddleware",
    "RequestIdMiddleware",
    "RequestLoggingMiddleware",
    "configure_logging",
    "get_logger",
    "metrics_text",
    "record_upstream",
    "request_id_ctx",
    "route_label",
]
