"""Command-line entry point: ``api-proxy`` / ``python -m api_proxy``.

Every option defaults to its environment variable, so the same binary is
configured by flags locally and by env vars in containers. Resolved values
are exported back to the environment before uvicorn starts, because each
worker process builds its own app through ``create_app_from_env``.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Sequence

import uvicorn

from .observability.logging import configure_logging, get_logger
from .routing.table import RouteTable
from .settings import ProxySettings

logger = get_logger(__name__)

APP_FACTORY = "api_proxy.main:create_app_from_env"
BACKLOG = 1024

# option dest -> environment variable
_ENV_VARS: dict[str, str] = {
    "host": "PROXY_HOST",
    "port": "PROXY_PORT",
    "workers": "PROXY_WORKERS",
    "max_body_size_mb": "MAX_BODY_SIZE_MB",
    "request_timeout": "REQUEST_TIMEOUT",
    "connect_timeout": "CONNECT_TIMEOUT",
    "keepalive_expiry": "KEEPALIVE_EXPIRY",
    "max_idle_connections": "POOL_MAX_IDLE_PER_HOST",
    "log_level": "LOG_LEVEL",
    "log_format": "LOG_FORMAT",
}


def build_parser(defaults: ProxySettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="api-proxy",
        description="Prefix-routed reverse proxy for upstream HTTP APIs.",
    )
    parser.add_argument("-H", "--host", default=defaults.host,
                        help="Listen address [env: PROXY_HOST]")
    parser.add_argument("-p", "--port", type=int, default=defaults.port,
                        help="Listen port [env: PROXY_PORT]")
    parser.add_argument("-w", "--workers", type=int, default=defaults.workers,
                        help="Worker processes [env: PROXY_WORKERS]")
    parser.add_argument("--max-body-size-mb", type=int, default=defaults.max_body_size_mb,
                        help="Maximum request body size in MB [env: MAX_BODY_SIZE_MB]")
    parser.add_argument("--request-timeout", type=float, default=defaults.request_timeout,
                        help="Total upstream request timeout in seconds [env: REQUEST_TIMEOUT]")
    parser.add_argument("--connect-timeout", type=float, default=defaults.connect_timeout,
                        help="Upstream connect timeout in seconds [env: CONNECT_TIMEOUT]")
    parser.add_argument("--keepalive-expiry", type=float, default=defaults.keepalive_expiry,
                        help="Idle upstream connection lifetime in seconds [env: KEEPALIVE_EXPIRY]")
    parser.add_argument("--max-idle-connections", type=int,
                        default=defaults.max_idle_connections,
                        help="Idle upstream connections kept [env: POOL_MAX_IDLE_PER_HOST]")
    parser.add_argument("--log-level", default=defaults.log_level,
                        help="Log level [env: LOG_LEVEL]")
    parser.add_argument("--log-format", choices=("json", "console"), default=defaults.log_format,
                        help="Log output format [env: LOG_FORMAT]")
    return parser


def parse_settings(
    argv: Sequence[str] | None = None,
    env: dict[str, str] | None = None,
) -> ProxySettings:
    """Parse CLI arguments on top of environment defaults."""
    defaults = ProxySettings.from_env(env)
    args = build_parser(defaults).parse_args(argv)
    return ProxySettings(
        host=args.host,
        port=args.port,
        workers=args.workers,
        max_body_size_mb=args.max_body_size_mb,
        request_timeout=args.request_timeout,
        connect_timeout=args.connect_timeout,
        keepalive_expiry=args.keepalive_expiry,
        max_idle_connections=args.max_idle_connections,
        log_level=args.log_level.upper(),
        log_format=args.log_format,
        metrics_enabled=defaults.metrics_enabled,
        routes=defaults.routes,
        allowed_headers=defaults.allowed_headers,
    )


def export_settings(settings: ProxySettings, environ: dict[str, str] | None = None) -> None:
    """Write resolved settings to the environment for worker processes."""
    target = os.environ if environ is None else environ
    for field_name, env_name in _ENV_VARS.items():
        target[env_name] = str(getattr(settings, field_name))
    target["METRICS_ENABLED"] = "true" if settings.metrics_enabled else "false"


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_settings(argv)
    except ValueError as exc:
        print(f"api-proxy: {exc}", file=sys.stderr)
        return 2

    errors = settings.validate()
    if errors:
        for error in errors:
            print(f"api-proxy: {error}", file=sys.stderr)
        return 2

    configure_logging(
        level=settings.log_level,
        json_output=settings.log_format == "json",
    )
    logger.info(
        "proxy_configuration",
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        max_body_size_mb=settings.max_body_size_mb,
        request_timeout=settings.request_timeout,
        connect_timeout=settings.connect_timeout,
    )
    for entry in RouteTable.from_mapping(settings.routes):
        logger.info("proxy_route", prefix=entry.prefix, target=entry.target_base)

    export_settings(settings)
    uvicorn.run(
        APP_FACTORY,
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        backlog=BACKLOG,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
