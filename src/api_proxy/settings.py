"""Proxy configuration settings.

ProxySettings is the single configuration object accepted by create_app().
It is a plain frozen dataclass so tests can build it directly without
touching os.environ; ``from_env`` is the production factory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .routing.headers import DEFAULT_ALLOWED_HEADERS
from .routing.table import DEFAULT_ROUTES

_LOG_FORMATS = ("json", "console")
_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass(frozen=True, slots=True)
class ProxySettings:
    """Configuration for the proxy application and its server."""

    # ── Server ─────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    """Listen address."""

    port: int = 8080
    """Listen port."""

    workers: int = 4
    """Number of uvicorn worker processes."""

    max_body_size_mb: int = 10
    """Inbound request body cap, in megabytes."""

    # ── Outbound client ────────────────────────────────────────────
    request_timeout: float = 3600.0
    """Total seconds allowed for one upstream exchange."""

    connect_timeout: float = 10.0
    """Seconds allowed to establish an upstream connection."""

    keepalive_expiry: float = 60.0
    """Seconds an idle upstream connection stays pooled."""

    max_idle_connections: int = 20
    """Idle keep-alive connections kept in the pool."""

    # ── Observability ──────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"
    """One of: json, console."""

    metrics_enabled: bool = True
    """Expose /metrics and record Prometheus metrics."""

    # ── Tables ─────────────────────────────────────────────────────
    routes: Mapping[str, str] = field(default_factory=lambda: DEFAULT_ROUTES)
    """Immutable mapping of path prefix -> upstream base URL."""

    allowed_headers: frozenset[str] = DEFAULT_ALLOWED_HEADERS
    """Request header names forwarded upstream (case-insensitive)."""

    @property
    def max_body_size(self) -> int:
        """Inbound body cap in bytes."""
        return self.max_body_size_mb * 1024 * 1024

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not 0 < self.port < 65536:
            errors.append(f"port must be between 1 and 65535, got {self.port}")
        if self.workers < 1:
            errors.append(f"workers must be >= 1, got {self.workers}")
        if self.max_body_size_mb < 1:
            errors.append(f"max_body_size_mb must be >= 1, got {self.max_body_size_mb}")
        if self.request_timeout <= 0:
            errors.append(f"request_timeout must be positive, got {self.request_timeout}")
        if self.connect_timeout <= 0:
            errors.append(f"connect_timeout must be positive, got {self.connect_timeout}")
        if self.keepalive_expiry < 0:
            errors.append(f"keepalive_expiry must be >= 0, got {self.keepalive_expiry}")
        if self.max_idle_connections < 0:
            errors.append(
                f"max_idle_connections must be >= 0, got {self.max_idle_connections}"
            )
        if self.log_format not in _LOG_FORMATS:
            errors.append(
                f"log_format must be one of {', '.join(_LOG_FORMATS)}, got {self.log_format!r}"
            )
        if not self.routes:
            errors.append("at least one route is required")
        return errors

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ProxySettings:
        """Build settings from environment variables.

        Unset variables fall back to the field defaults. Tests should
        construct ProxySettings directly.

        Raises:
            ValueError: If a numeric variable is malformed.
        """
        if env is None:
            env = dict(os.environ)

        defaults = cls()
        return cls(
            host=env.get("PROXY_HOST", defaults.host),
            port=_env_int(env, "PROXY_PORT", defaults.port),
            workers=_env_int(env, "PROXY_WORKERS", defaults.workers),
            max_body_size_mb=_env_int(env, "MAX_BODY_SIZE_MB", defaults.max_body_size_mb),
            request_timeout=_env_float(env, "REQUEST_TIMEOUT", defaults.request_timeout),
            connect_timeout=_env_float(env, "CONNECT_TIMEOUT", defaults.connect_timeout),
            keepalive_expiry=_env_float(env, "KEEPALIVE_EXPIRY", defaults.keepalive_expiry),
            max_idle_connections=_env_int(
                env, "POOL_MAX_IDLE_PER_HOST", defaults.max_idle_connections,
            ),
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
            log_format=env.get("LOG_FORMAT", defaults.log_format).lower(),
            metrics_enabled=env.get(
                "METRICS_ENABLED", str(defaults.metrics_enabled),
            ).strip().lower() in _TRUE_VALUES,
            routes=MappingProxyType(dict(DEFAULT_ROUTES)),
        )


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
