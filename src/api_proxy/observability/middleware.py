"""Request correlation, metrics and access-log middleware.

- ``RequestIdMiddleware`` assigns every request an ID (reusing a
  well-formed ``X-Request-ID``), exposes it to log processors through
  ``request_id_ctx`` and echoes it on the response.
- ``MetricsMiddleware`` feeds the ``http_server_*`` Prometheus series.
- ``RequestLoggingMiddleware`` writes one ``request_completed`` line per
  request; 5xx responses are logged at warning.

Path labels come from ``route_label`` and are always a route prefix, a
reserved path, or ``unmatched``. Method labels are one of the proxied
methods or ``other``.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..routing.forwarder import ALLOWED_METHODS
from ..routing.url_builder import encode_raw
from .logging import get_logger, request_id_ctx
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
UNMATCHED_LABEL = "unmatched"
OTHER_METHOD_LABEL = "other"

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9-]{8,128}$")


def raw_request_path(request: Request) -> str:
    """Return the request path as sent, with non-ASCII octets percent-encoded."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        # Some servers include the query string in raw_path.
        return encode_raw(raw_path.split(b"?", 1)[0])
    return encode_raw(request.url.path)


def route_label(request: Request) -> str:
    state = request.app.state
    path = raw_request_path(request)
    if path in getattr(state, "reserved_paths", ()):
        return path
    route_table = getattr(state, "route_table", None)
    match = route_table.resolve(path) if route_table is not None else None
    return match.prefix if match is not None else UNMATCHED_LABEL


def method_label(request: Request) -> str:
    return request.method if request.method in ALLOWED_METHODS else OTHER_METHOD_LABEL


def accept_request_id(value: str | None) -> str:
    """Reuse a well-formed inbound ID, otherwise mint a UUID4."""
    if value and _REQUEST_ID_RE.match(value):
        return value
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        label = route_label(request)
        method = method_label(request)
        status = "500"
        with HTTP_REQUESTS_IN_FLIGHT.track_inprogress(), \
                HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=label).time():
            try:
                response = await call_next(request)
                status = str(response.status_code)
            finally:
                HTTP_REQUESTS_TOTAL.labels(method=method, path=label, status=status).inc()
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            method=request.method,
            route=route_label(request),
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response
