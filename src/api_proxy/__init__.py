"""Prefix-routed reverse proxy for upstream HTTP APIs."""

from .main import create_app, create_app_from_env
from .settings import ProxySettings

__all__ = ["create_app", "create_app_from_env", "ProxySettings"]
