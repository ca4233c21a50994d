"""Pytest configuration for api-proxy tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports without an editable install.
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import httpx
import pytest

from api_proxy.routing.forwarder import Forwarder
from api_proxy.settings import ProxySettings

TEST_ROUTES = {
    '/openai': 'https://api.openai.com',
    '/groq': 'https://api.groq.com/openai',
    '/api': 'https://a.example',
    '/api/v2': 'https://b.example/v2',
}


class UpstreamRecorder:
    """Simulated upstream: records every request and answers via a handler.

    ``handler`` may return an ``httpx.Response`` or raise an httpx
    exception to simulate transport failures.
    """

    def __init__(self, handler=None):
        self.requests: list[httpx.Request] = []
        self._handler = handler or (lambda request: httpx.Response(200, content=b'ok'))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def settings() -> ProxySettings:
    return ProxySettings(routes=TEST_ROUTES, connect_timeout=1.0, request_timeout=5.0)


@pytest.fixture
def make_forwarder():
    """Build a Forwarder whose transport is a simulated upstream."""

    def _make(handler, **overrides) -> Forwarder:
        options = dict(connect_timeout=1.0, request_timeout=5.0)
        options.update(overrides)
        return Forwarder(transport=httpx.MockTransport(handler), **options)

    return _make


@pytest.fixture
def recorder():
    """Return the UpstreamRecorder class for building simulated upstreams."""
    return UpstreamRecorder
