"""structlog setup for api-proxy.

One processor chain serves both structlog loggers and plain stdlib loggers
(uvicorn, httpx), so every line on stdout has the same shape: JSON in
production, colored key-value pairs with ``LOG_FORMAT=console``.

Usage::

    from api_proxy.observability.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_output=True)  # once per process
    logger = get_logger(__name__)
    logger.warning("proxy_upstream_error", prefix="/openai", kind="upstream_timeout")
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any, MutableMapping

import structlog

SERVICE_NAME = "api-proxy"

# Set per request by RequestIdMiddleware; None outside a request.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Third-party loggers that would duplicate our own request lines.
_QUIET_LOGGERS: dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}

_configured = False


def _add_request_id(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    request_id = request_id_ctx.get()
    if request_id is not None:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def _add_service(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        _add_service,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = True,
    force: bool = False,
) -> None:
    """Route structlog and stdlib logging through one formatter.

    Args:
        level: Root log level name; unknown names fall back to INFO.
        json_output: JSON lines when True, console rendering otherwise.
        force: Reconfigure even if already configured in this process
            (uvicorn workers call this once each).
    """
    global _configured
    if _configured and not force:
        return

    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if json_output:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))
    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
