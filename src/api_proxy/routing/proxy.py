"""Catch-all proxy endpoint.

Every request that is not a reserved path lands here and runs the
pipeline:

1. Resolve the longest matching route prefix (404 on miss).
2. Build the target URL from the base and remainder (400 on failure).
3. Check the method against the allowed set (405).
4. Project the request headers onto the allowlist.
5. Forward through the shared client (502 / 504 / 500 on failure).
6. Translate the upstream response and append security headers.

Shared state (route table, header filter, forwarder) is read from
``app.state``; it is built once by ``create_app`` and never mutated.

The upstream body is read in full before a response is produced, so a
body-read failure still gets a clean 500. Streaming upstreams (SSE) are
therefore relayed only once they complete.
"""

from __future__ import annotations

import time

from starlette.requests import Request
from starlette.responses import Response

from ..observability.logging import get_logger
from ..observability.metrics import record_upstream
from ..observability.middleware import UNMATCHED_LABEL, raw_request_path
from .errors import ProxyError, ProxyErrorKind, error_response
from .forwarder import ALLOWED_METHODS
from .translator import translate_response
from .url_builder import build_target_url, encode_raw

logger = get_logger(__name__)


def _record(request: Request, prefix: str, outcome: str, duration: float | None = None) -> None:
    if request.app.state.settings.metrics_enabled:
        record_upstream(prefix, outcome, duration)


async def proxy_request(request: Request) -> Response:
    """Route, filter and forward one request to its upstream."""
    state = request.app.state
    path = raw_request_path(request)
    query = encode_raw(request.scope.get("query_string", b""))

    match = state.route_table.resolve(path)
    prefix = match.prefix if match is not None else UNMATCHED_LABEL
    target_url: str | None = None
    started: float | None = None

    try:
        if match is None:
            raise ProxyError(ProxyErrorKind.NO_ROUTE_MATCH, path)

        target_url = build_target_url(match.target_base, match.remainder, query)

        if request.method not in ALLOWED_METHODS:
            raise ProxyError(ProxyErrorKind.METHOD_NOT_ALLOWED, request.method)

        headers = state.header_filter.filter(request.headers.raw)
        body = await request.body()

        started = time.perf_counter()
        upstream = await state.forwarder.send(request.method, target_url, headers, body)
    except ProxyError as exc:
        duration = time.perf_counter() - started if started is not None else None
        if exc.kind.is_client_error:
            logger.info(
                "proxy_request_rejected",
                kind=exc.kind.value,
                method=request.method,
                prefix=prefix,
                detail=exc.detail,
            )
        else:
            logger.warning(
                "proxy_upstream_error",
                kind=exc.kind.value,
                method=request.method,
                prefix=prefix,
                target=target_url,
                error=repr(exc.__cause__) if exc.__cause__ else None,
            )
        _record(request, prefix, exc.kind.value, duration)
        return error_response(exc.kind)

    _record(request, prefix, "ok", time.perf_counter() - started)
    logger.debug(
        "proxy_upstream_response",
        prefix=prefix,
        target=target_url,
        status=upstream.status_code,
        bytes=len(upstream.body),
    )
    return translate_response(upstream)
