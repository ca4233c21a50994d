"""Header policy for proxied requests and responses.

Inbound headers are projected onto a fixed, case-insensitive allowlist
before forwarding. Response headers are relayed except for hop-by-hop
framing headers, and the security headers are applied last.

Header pairs are handled as raw bytes (ASGI ``request.headers.raw`` and
``httpx.Headers.raw``) so values pass through verbatim. A pair that cannot
be carried on the wire (non latin-1 text, control characters, invalid
name token) is dropped, never raised.
"""

from __future__ import annotations

import re
from typing import Iterable, Union

HeaderPart = Union[str, bytes]

# Request headers allowed through to the upstream.
DEFAULT_ALLOWED_HEADERS: frozenset[str] = frozenset({
    "accept",
    "content-type",
    "authorization",
    "x-goog-api-key",
    "x-api-key",
    "user-agent",
    "cache-control",
})

# Describe the upstream connection, not the payload; never relayed.
HOP_BY_HOP_HEADERS: frozenset[bytes] = frozenset({
    b"connection",
    b"keep-alive",
    b"proxy-authenticate",
    b"proxy-authorization",
    b"te",
    b"trailer",
    b"transfer-encoding",
    b"upgrade",
})

SECURITY_HEADERS: tuple[tuple[str, str], ...] = (
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "DENY"),
    ("Referrer-Policy", "strict-origin-when-cross-origin"),
    ("X-XSS-Protection", "1; mode=block"),
)

# RFC 9110 token for names; field-value as accepted by h11 (no CR/LF/NUL,
# no leading or trailing whitespace).
_TOKEN_RE = re.compile(rb"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_FIELD_VALUE_RE = re.compile(rb"^(?:[\x21-\x7e\x80-\xff](?:[ \t]*[\x21-\x7e\x80-\xff])*)?$")


def _as_bytes(part: HeaderPart) -> bytes | None:
    if isinstance(part, bytes):
        return part
    try:
        return part.encode("latin-1")
    except UnicodeEncodeError:
        return None


def encode_header(name: HeaderPart, value: HeaderPart) -> tuple[bytes, bytes] | None:
    """Return ``(lowercased name, value)`` as wire bytes, or None if unrepresentable."""
    raw_name = _as_bytes(name)
    raw_value = _as_bytes(value)
    if raw_name is None or raw_value is None:
        return None
    if not _TOKEN_RE.match(raw_name) or not _FIELD_VALUE_RE.match(raw_value):
        return None
    return raw_name.lower(), raw_value


class HeaderFilter:
    """Immutable case-insensitive header allowlist."""

    __slots__ = ("_allowed",)

    def __init__(self, allowed: Iterable[str] = DEFAULT_ALLOWED_HEADERS) -> None:
        self._allowed: frozenset[bytes] = frozenset(
            name.lower().encode("latin-1") for name in allowed
        )

    @property
    def allowed(self) -> frozenset[str]:
        return frozenset(name.decode("latin-1") for name in self._allowed)

    def __contains__(self, name: object) -> bool:
        if isinstance(name, str):
            raw = _as_bytes(name)
        elif isinstance(name, bytes):
            raw = name
        else:
            return False
        return raw is not None and raw.lower() in self._allowed

    def filter(
        self, headers: Iterable[tuple[HeaderPart, HeaderPart]],
    ) -> list[tuple[bytes, bytes]]:
        """Keep only allowlisted headers, in order, values untouched."""
        forwarded: list[tuple[bytes, bytes]] = []
        for name, value in headers:
            encoded = encode_header(name, value)
            if encoded is None:
                continue
            if encoded[0] in self._allowed:
                forwarded.append(encoded)
        return forwarded
