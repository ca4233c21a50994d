"""Inbound request body cap.

Pure ASGI middleware, so the body is never buffered here:

1. A declared ``Content-Length`` above the cap is rejected before the
   application runs.
2. Otherwise ``receive`` is wrapped and counts bytes as they arrive; the
   first chunk that crosses the cap aborts the request with 413.
"""

from __future__ import annotations

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .observability.logging import get_logger
from .routing.errors import ProxyErrorKind, error_response

logger = get_logger(__name__)


class PayloadTooLarge(Exception):
    """Raised from the wrapped ``receive`` once the cap is exceeded."""

    def __init__(self, received: int, limit: int):
        self.received = received
        self.limit = limit
        super().__init__(f"Request body exceeds {limit} bytes (received {received})")


def _declared_length(scope: Scope) -> int | None:
    for name, value in scope.get("headers", ()):
        if name == b"content-length":
            try:
                return int(value)
            except ValueError:
                return None
    return None


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_body_size`` bytes."""

    def __init__(self, app: ASGIApp, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = _declared_length(scope)
        if declared is not None and declared > self.max_body_size:
            logger.info(
                "request_body_rejected",
                declared=declared,
                limit=self.max_body_size,
            )
            await error_response(ProxyErrorKind.PAYLOAD_TOO_LARGE)(scope, receive, send)
            return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_size:
                    raise PayloadTooLarge(received, self.max_body_size)
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except PayloadTooLarge as exc:
            if response_started:
                raise
            logger.info(
                "request_body_rejected",
                received=exc.received,
                limit=exc.limit,
            )
            await error_response(ProxyErrorKind.PAYLOAD_TOO_LARGE)(scope, receive, send)
