"""Upstream response -> outbound response."""

from __future__ import annotations

from starlette.responses import Response

from .forwarder import UpstreamResponse
from .headers import HOP_BY_HOP_HEADERS, SECURITY_HEADERS, encode_header

_SECURITY_HEADERS_RAW: tuple[tuple[bytes, bytes], ...] = tuple(
    (name.lower().encode("latin-1"), value.encode("latin-1"))
    for name, value in SECURITY_HEADERS
)
_SECURITY_HEADER_NAMES: frozenset[bytes] = frozenset(name for name, _ in _SECURITY_HEADERS_RAW)


def _valid_status(status_code: int) -> int:
    return status_code if 100 <= status_code <= 599 else 500


def _allows_body(status_code: int) -> bool:
    return status_code >= 200 and status_code not in (204, 304)


def translate_response(upstream: UpstreamResponse) -> Response:
    """Relay status, headers and raw body, then apply the security headers.

    Upstream headers that cannot be re-encoded are skipped. Hop-by-hop
    headers are not relayed. ``content-length`` is kept from upstream (it
    describes the same raw bytes) or computed when absent. Security
    headers replace any same-named upstream header so each appears once.
    """
    status_code = _valid_status(upstream.status_code)

    raw_headers: list[tuple[bytes, bytes]] = []
    has_length = False
    for name, value in upstream.headers:
        encoded = encode_header(name, value)
        if encoded is None:
            continue
        lname = encoded[0]
        if lname in HOP_BY_HOP_HEADERS or lname in _SECURITY_HEADER_NAMES:
            continue
        if lname == b"content-length":
            if has_length:
                continue
            has_length = True
        raw_headers.append(encoded)

    if not has_length and _allows_body(status_code):
        raw_headers.append((b"content-length", str(len(upstream.body)).encode("latin-1")))

    raw_headers.extend(_SECURITY_HEADERS_RAW)

    response = Response(content=upstream.body, status_code=status_code)
    response.raw_headers = raw_headers
    return response
