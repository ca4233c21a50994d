"""Outbound dispatch through one shared httpx client.

The ``Forwarder`` owns a single ``httpx.AsyncClient`` for the process
lifetime: one connection pool, one set of timeouts, no redirects. Each
call makes exactly one attempt and either returns the complete upstream
response or raises a classified ``ProxyError``.

Classification:

- ``httpx.TimeoutException`` or the total deadline -> ``UPSTREAM_TIMEOUT``
- ``httpx.ConnectError`` -> ``UPSTREAM_CONNECT``
- ``httpx.InvalidURL`` (target rejected by httpx) -> ``INVALID_URL``
- transport failure after status/headers arrived -> ``BODY_READ_FAILURE``
- any other ``httpx.HTTPError`` -> ``UPSTREAM_OTHER``
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

import httpx

from .errors import ProxyError, ProxyErrorKind

if TYPE_CHECKING:
    from ..settings import ProxySettings

ALLOWED_METHODS: frozenset[str] = frozenset({
    "GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD",
})


@dataclass(frozen=True, slots=True)
class UpstreamResponse:
    """Complete upstream response with raw, undecoded body bytes."""

    status_code: int
    headers: list[tuple[bytes, bytes]]
    body: bytes


class Forwarder:
    """Sends proxied requests over a shared connection pool.

    Args:
        connect_timeout: Seconds allowed to establish a connection.
        request_timeout: Total seconds allowed for the whole exchange,
            including reading the body.
        keepalive_expiry: Seconds an idle keep-alive connection is kept.
        max_idle_connections: Idle keep-alive connections retained.
        transport: Optional httpx transport (tests use ``MockTransport``).
    """

    def __init__(
        self,
        *,
        connect_timeout: float,
        request_timeout: float,
        keepalive_expiry: float = 60.0,
        max_idle_connections: int = 20,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._request_timeout = request_timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(request_timeout, connect=connect_timeout),
            limits=httpx.Limits(
                max_connections=None,
                max_keepalive_connections=max_idle_connections,
                keepalive_expiry=keepalive_expiry,
            ),
            # The caller's Accept-Encoding is not forwarded, so ask for
            # identity bodies rather than httpx's gzip default.
            headers={"Accept-Encoding": "identity"},
            follow_redirects=False,
            transport=transport,
        )
        # Only allowlisted caller headers go upstream, not httpx defaults.
        for name in ("accept", "user-agent"):
            del self._client.headers[name]

    @classmethod
    def from_settings(
        cls,
        settings: ProxySettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Forwarder:
        return cls(
            connect_timeout=settings.connect_timeout,
            request_timeout=settings.request_timeout,
            keepalive_expiry=settings.keepalive_expiry,
            max_idle_connections=settings.max_idle_connections,
            transport=transport,
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        """Close the shared client and release pooled connections."""
        if not self._client.is_closed:
            await self._client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        headers: Sequence[tuple[bytes, bytes]],
        body: bytes,
    ) -> UpstreamResponse:
        """Forward one request and return the full upstream response.

        Raises:
            ProxyError: ``METHOD_NOT_ALLOWED`` for methods outside
                ``ALLOWED_METHODS``, otherwise one of the upstream kinds.
        """
        if method not in ALLOWED_METHODS:
            raise ProxyError(ProxyErrorKind.METHOD_NOT_ALLOWED, method)

        try:
            return await asyncio.wait_for(
                self._exchange(method, url, headers, body),
                timeout=self._request_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ProxyError(ProxyErrorKind.UPSTREAM_TIMEOUT, url) from exc
        except httpx.ConnectError as exc:
            raise ProxyError(ProxyErrorKind.UPSTREAM_CONNECT, url) from exc
        except httpx.InvalidURL as exc:
            # Not an HTTPError; raised by build_request (e.g. URL too long).
            raise ProxyError(ProxyErrorKind.INVALID_URL, url[:256]) from exc
        except httpx.HTTPError as exc:
            raise ProxyError(ProxyErrorKind.UPSTREAM_OTHER, url) from exc

    async def _exchange(
        self,
        method: str,
        url: str,
        headers: Sequence[tuple[bytes, bytes]],
        body: bytes,
    ) -> UpstreamResponse:
        request = self._client.build_request(
            method,
            url,
            headers=list(headers),
            content=body if body else None,
        )
        response = await self._client.send(request, stream=True)
        try:
            try:
                chunks = [chunk async for chunk in response.aiter_raw()]
            except httpx.TimeoutException:
                raise
            except httpx.HTTPError as exc:
                raise ProxyError(ProxyErrorKind.BODY_READ_FAILURE, url) from exc
        finally:
            await response.aclose()

        return UpstreamResponse(
            status_code=response.status_code,
            headers=list(response.headers.raw),
            body=b"".join(chunks),
        )
