"""Target URL construction.

The path remainder left after prefix matching is resolved against the
upstream base as an RFC 3986 relative reference (``urljoin``), never
concatenated. The base path is treated as a directory so its segments
survive, and the reference is anchored with ``./`` so a remainder such as
``/https://evil.example`` or ``//evil.example`` stays a path on the base
host.

Two checks run on the result:

- scheme, host and port equal the base's;
- the path stays under the base path (``..`` segments cannot climb out).
"""

from __future__ import annotations

from urllib.parse import SplitResult, quote, urljoin, urlsplit

from .errors import ProxyError, ProxyErrorKind


def _split_base(target_base: str) -> SplitResult:
    try:
        base = urlsplit(target_base)
        # Accessing .port validates it.
        base.port
    except ValueError as exc:
        raise ProxyError(ProxyErrorKind.INVALID_URL, f'unparsable base {target_base!r}') from exc
    if base.scheme not in ('http', 'https') or not base.hostname:
        raise ProxyError(ProxyErrorKind.INVALID_URL, f'base is not absolute http(s): {target_base!r}')
    return base


# Printable ASCII other than "#" passes through unchanged; high bytes,
# controls and spaces become %XX escapes of the original octets.
_RAW_SAFE = ''.join(chr(c) for c in range(0x21, 0x7f) if chr(c) != '#')


def encode_raw(raw: bytes | str) -> str:
    """Render a raw request path or query string as URL text, byte for byte."""
    return quote(raw, safe=_RAW_SAFE)


def _with_query(url: str, query: str) -> str:
    return f'{url}?{query}' if query else url


def build_target_url(target_base: str, remainder: str, query: str = '') -> str:
    """Combine an upstream base and a path remainder into an absolute URL.

    Args:
        target_base: Absolute upstream base (e.g. ``https://api.openai.com``).
        remainder: Request path after the matched prefix (may be empty).
        query: Raw inbound query string without ``?`` (may be empty).

    Returns:
        The absolute target URL.

    Raises:
        ProxyError: ``INVALID_URL`` if the base or result is unparsable or
            the result would leave the base's origin or path.
    """
    base = _split_base(target_base)
    origin = f'{base.scheme}://{base.netloc}'
    base_path = base.path or '/'
    directory = base_path if base_path.endswith('/') else base_path + '/'

    relative = remainder[1:] if remainder.startswith('/') else remainder
    # A literal "#" would start a fragment and swallow the query.
    relative = relative.replace('#', '%23')
    query = query.replace('#', '%23')
    if not relative:
        # "/openai" -> base as-is; "/openai/" -> base as a directory.
        path = directory if remainder == '/' else base_path
        return _with_query(origin + path, query)

    resolved = urljoin(origin + directory, _with_query('./' + relative, query))

    try:
        result = urlsplit(resolved)
        same_port = result.port == base.port
    except ValueError as exc:
        raise ProxyError(ProxyErrorKind.INVALID_URL, f'unparsable target {resolved!r}') from exc

    if (
        result.scheme != base.scheme
        or (result.hostname or '').lower() != base.hostname.lower()
        or not same_port
    ):
        raise ProxyError(ProxyErrorKind.INVALID_URL, f'target left base origin: {resolved!r}')
    if not (result.path.startswith(directory) or result.path == base_path):
        raise ProxyError(ProxyErrorKind.INVALID_URL, f'target left base path: {resolved!r}')

    return resolved
