"""Routing-and-forwarding pipeline: prefix resolution through response relay."""

from .errors import ProxyError, ProxyErrorKind, error_payload, error_response
from .forwarder import ALLOWED_METHODS, Forwarder, UpstreamResponse
from .headers import (
    DEFAULT_ALLOWED_HEADERS,
    SECURITY_HEADERS,
    HeaderFilter,
)
from .table import DEFAULT_ROUTES, RouteEntry, RouteMatch, RouteTable
from .translator import translate_response
from .url_builder import build_target_url

__all__ = [
    'ALLOWED_METHODS',
    'DEFAULT_ALLOWED_HEADERS',
    'DEFAULT_ROUTES',
    'Forwarder',
    'HeaderFilter',
    'ProxyError',
    'ProxyErrorKind',
    'RouteEntry',
    'RouteMatch',
    'RouteTable',
    'SECURITY_HEADERS',
    'UpstreamResponse',
    'build_target_url',
    'error_payload',
    'error_response',
    'translate_response',
]
