"""Closed error classification for the proxy pipeline.

Every failure the pipeline can produce is one ``ProxyErrorKind``. Each kind
maps to exactly one HTTP status and one client-facing message through
``_ERROR_TABLE``, so call sites never pick status codes themselves.

Error bodies have the fixed shape ``{"error": <message>, "code": <status>}``.
Upstream exception text is never placed in the body; it travels on
``ProxyError.__cause__`` for logging only.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from starlette.responses import JSONResponse


class ProxyErrorKind(str, Enum):
    """Classification of a pipeline failure."""

    # Client-caused
    NO_ROUTE_MATCH = "no_route_match"
    INVALID_URL = "invalid_url"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    PAYLOAD_TOO_LARGE = "payload_too_large"

    # Upstream-caused
    UPSTREAM_CONNECT = "upstream_connect"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    UPSTREAM_OTHER = "upstream_other"
    BODY_READ_FAILURE = "body_read_failure"

    @property
    def status_code(self) -> int:
        return _ERROR_TABLE[self][0]

    @property
    def message(self) -> str:
        return _ERROR_TABLE[self][1]

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


_ERROR_TABLE: Mapping[ProxyErrorKind, tuple[int, str]] = MappingProxyType({
    ProxyErrorKind.NO_ROUTE_MATCH: (404, "No matching route"),
    ProxyErrorKind.INVALID_URL: (400, "Invalid target URL"),
    ProxyErrorKind.METHOD_NOT_ALLOWED: (405, "Method not allowed"),
    ProxyErrorKind.PAYLOAD_TOO_LARGE: (413, "Request body too large"),
    ProxyErrorKind.UPSTREAM_CONNECT: (502, "Failed to connect to upstream"),
    ProxyErrorKind.UPSTREAM_TIMEOUT: (504, "Upstream request timed out"),
    ProxyErrorKind.UPSTREAM_OTHER: (500, "Failed to process request"),
    ProxyErrorKind.BODY_READ_FAILURE: (500, "Failed to read upstream response"),
})


class ProxyError(Exception):
    """Raised anywhere in the pipeline; converted to a response in one place."""

    def __init__(self, kind: ProxyErrorKind, detail: str | None = None):
        self.kind = kind
        self.detail = detail
        message = f"{kind.value}: {detail}" if detail else kind.value
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code


def error_payload(kind: ProxyErrorKind) -> dict[str, object]:
    return {"error": kind.message, "code": kind.status_code}


def error_response(kind: ProxyErrorKind) -> JSONResponse:
    """Build the JSON error response for a classified failure."""
    return JSONResponse(status_code=kind.status_code, content=error_payload(kind))
