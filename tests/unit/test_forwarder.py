"""Unit tests for the shared outbound Forwarder.

The upstream is simulated with httpx.MockTransport; handlers either return
a response or raise the httpx exception a real transport would raise.
"""
import asyncio
import gzip

import httpx
import pytest

from api_proxy.routing.errors import ProxyError, ProxyErrorKind
from api_proxy.routing.forwarder import ALLOWED_METHODS, Forwarder, UpstreamResponse
from api_proxy.settings import ProxySettings

URL = 'https://api.openai.com/v1/models'


class _FailingStream(httpx.AsyncByteStream):
    """Body stream that yields one chunk, then fails."""

    def __init__(self, exc: Exception):
        self._exc = exc

    async def __aiter__(self):
        yield b'partial'
        raise self._exc


def _raises(exc: Exception):
    def handler(request):
        raise exc
    return handler


async def _send_expecting(forwarder: Forwarder, kind: ProxyErrorKind, method='GET'):
    try:
        with pytest.raises(ProxyError) as exc_info:
            await forwarder.send(method, URL, [], b'')
    finally:
        await forwarder.aclose()
    assert exc_info.value.kind is kind
    return exc_info.value


# ── Successful exchanges ──


class TestSend:

    @pytest.mark.asyncio
    async def test_returns_status_headers_and_body(self, make_forwarder):
        fwd = make_forwarder(lambda r: httpx.Response(
            201, headers=[('x-upstream', 'yes')], content=b'{"id": 1}',
        ))
        result = await fwd.send('POST', URL, [], b'{}')
        await fwd.aclose()

        assert isinstance(result, UpstreamResponse)
        assert result.status_code == 201
        assert (b'x-upstream', b'yes') in [(n.lower(), v) for n, v in result.headers]
        assert result.body == b'{"id": 1}'

    @pytest.mark.asyncio
    async def test_forwards_method_url_headers_and_body(self, make_forwarder, recorder):
        upstream = recorder()
        fwd = make_forwarder(upstream)
        await fwd.send(
            'PUT',
            URL + '?limit=5',
            [(b'authorization', b'Bearer abc'), (b'content-type', b'application/json')],
            b'{"a":1}',
        )
        await fwd.aclose()

        sent = upstream.last
        assert sent.method == 'PUT'
        assert str(sent.url) == URL + '?limit=5'
        assert sent.headers['authorization'] == 'Bearer abc'
        assert sent.headers['content-type'] == 'application/json'
        assert sent.content == b'{"a":1}'

    @pytest.mark.asyncio
    async def test_host_header_is_the_target_host(self, make_forwarder, recorder):
        upstream = recorder()
        fwd = make_forwarder(upstream)
        await fwd.send('GET', URL, [], b'')
        await fwd.aclose()
        assert upstream.last.headers['host'] == 'api.openai.com'

    @pytest.mark.asyncio
    async def test_no_client_default_headers_added(self, make_forwarder, recorder):
        upstream = recorder()
        fwd = make_forwarder(upstream)
        await fwd.send('GET', URL, [], b'')
        await fwd.aclose()
        assert 'user-agent' not in upstream.last.headers
        assert 'accept' not in upstream.last.headers

    @pytest.mark.asyncio
    async def test_requests_identity_encoding(self, make_forwarder, recorder):
        upstream = recorder()
        fwd = make_forwarder(upstream)
        await fwd.send('GET', URL, [], b'')
        await fwd.aclose()
        assert upstream.last.headers['accept-encoding'] == 'identity'

    @pytest.mark.asyncio
    async def test_compressed_body_is_not_decoded(self, make_forwarder):
        compressed = gzip.compress(b'{"hello": "world"}')
        fwd = make_forwarder(lambda r: httpx.Response(
            200, headers=[('content-encoding', 'gzip')], content=compressed,
        ))
        result = await fwd.send('GET', URL, [], b'')
        await fwd.aclose()
        assert result.body == compressed

    @pytest.mark.asyncio
    async def test_redirects_are_not_followed(self, make_forwarder, recorder):
        upstream = recorder(lambda r: httpx.Response(302, headers={'location': 'https://elsewhere.example/'}))
        fwd = make_forwarder(upstream)
        result = await fwd.send('GET', URL, [], b'')
        await fwd.aclose()
        assert result.status_code == 302
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_repeated_response_headers_are_kept(self, make_forwarder):
        fwd = make_forwarder(lambda r: httpx.Response(
            200, headers=[('set-cookie', 'a=1'), ('set-cookie', 'b=2')], content=b'',
        ))
        result = await fwd.send('GET', URL, [], b'')
        await fwd.aclose()
        cookies = [v for n, v in result.headers if n.lower() == b'set-cookie']
        assert cookies == [b'a=1', b'b=2']

    @pytest.mark.asyncio
    async def test_upstream_error_status_is_a_response(self, make_forwarder):
        fwd = make_forwarder(lambda r: httpx.Response(503, content=b'busy'))
        result = await fwd.send('GET', URL, [], b'')
        await fwd.aclose()
        assert result.status_code == 503
        assert result.body == b'busy'

    @pytest.mark.asyncio
    async def test_single_attempt_per_call(self, make_forwarder, recorder):
        upstream = recorder(lambda r: httpx.Response(500))
        fwd = make_forwarder(upstream)
        await fwd.send('POST', URL, [], b'x')
        await fwd.aclose()
        assert len(upstream.requests) == 1


# ── Methods ──


class TestMethods:

    def test_allowed_set(self):
        assert ALLOWED_METHODS == {'GET', 'POST', 'PUT', 'DELETE', 'PATCH', 'OPTIONS', 'HEAD'}

    @pytest.mark.asyncio
    async def test_other_method_rejected_without_upstream_call(self, make_forwarder, recorder):
        upstream = recorder()
        await _send_expecting(make_forwarder(upstream), ProxyErrorKind.METHOD_NOT_ALLOWED, 'PROPFIND')
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_method_match_is_case_sensitive(self, make_forwarder):
        await _send_expecting(make_forwarder(_raises(AssertionError())), ProxyErrorKind.METHOD_NOT_ALLOWED, 'get')


# ── Failure classification ──


class TestClassification:

    @pytest.mark.asyncio
    async def test_connect_error(self, make_forwarder):
        err = await _send_expecting(
            make_forwarder(_raises(httpx.ConnectError('connection refused'))),
            ProxyErrorKind.UPSTREAM_CONNECT,
        )
        assert err.status_code == 502
        assert isinstance(err.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_connect_timeout_is_a_timeout(self, make_forwarder):
        await _send_expecting(
            make_forwarder(_raises(httpx.ConnectTimeout('connect timed out'))),
            ProxyErrorKind.UPSTREAM_TIMEOUT,
        )

    @pytest.mark.asyncio
    async def test_read_timeout(self, make_forwarder):
        err = await _send_expecting(
            make_forwarder(_raises(httpx.ReadTimeout('read timed out'))),
            ProxyErrorKind.UPSTREAM_TIMEOUT,
        )
        assert err.status_code == 504

    @pytest.mark.asyncio
    async def test_total_deadline(self, make_forwarder):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200)

        await _send_expecting(
            make_forwarder(slow, request_timeout=0.05),
            ProxyErrorKind.UPSTREAM_TIMEOUT,
        )

    @pytest.mark.asyncio
    async def test_protocol_error_is_other(self, make_forwarder):
        err = await _send_expecting(
            make_forwarder(_raises(httpx.RemoteProtocolError('malformed status line'))),
            ProxyErrorKind.UPSTREAM_OTHER,
        )
        assert err.status_code == 500

    @pytest.mark.asyncio
    async def test_body_read_failure(self, make_forwarder):
        handler = lambda r: httpx.Response(200, stream=_FailingStream(httpx.ReadError('reset')))
        err = await _send_expecting(make_forwarder(handler), ProxyErrorKind.BODY_READ_FAILURE)
        assert err.status_code == 500

    @pytest.mark.asyncio
    async def test_body_read_timeout_is_a_timeout(self, make_forwarder):
        handler = lambda r: httpx.Response(200, stream=_FailingStream(httpx.ReadTimeout('stalled')))
        await _send_expecting(make_forwarder(handler), ProxyErrorKind.UPSTREAM_TIMEOUT)

    @pytest.mark.asyncio
    async def test_url_rejected_by_httpx_is_invalid_url(self, make_forwarder, recorder):
        upstream = recorder()
        fwd = make_forwarder(upstream)
        try:
            with pytest.raises(ProxyError) as exc_info:
                await fwd.send('GET', URL + '/' + 'a' * 70000, [], b'')
        finally:
            await fwd.aclose()
        assert exc_info.value.kind is ProxyErrorKind.INVALID_URL
        assert exc_info.value.status_code == 400
        assert isinstance(exc_info.value.__cause__, httpx.InvalidURL)
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_error_detail_is_the_target_url(self, make_forwarder):
        err = await _send_expecting(
            make_forwarder(_raises(httpx.ConnectError('refused'))),
            ProxyErrorKind.UPSTREAM_CONNECT,
        )
        assert err.detail == URL


# ── Lifecycle ──


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self, make_forwarder):
        fwd = make_forwarder(lambda r: httpx.Response(200))
        assert not fwd.is_closed
        await fwd.aclose()
        await fwd.aclose()
        assert fwd.is_closed

    @pytest.mark.asyncio
    async def test_client_is_reused_across_calls(self, make_forwarder, recorder):
        upstream = recorder()
        fwd = make_forwarder(upstream)
        for _ in range(3):
            await fwd.send('GET', URL, [], b'')
        assert not fwd.is_closed
        await fwd.aclose()
        assert len(upstream.requests) == 3

    @pytest.mark.asyncio
    async def test_from_settings(self, recorder):
        upstream = recorder()
        settings = ProxySettings(connect_timeout=2.0, request_timeout=7.0)
        fwd = Forwarder.from_settings(settings, transport=httpx.MockTransport(upstream))
        result = await fwd.send('GET', URL, [], b'')
        await fwd.aclose()
        assert result.status_code == 200
        assert upstream.last.extensions['timeout']['connect'] == 2.0
        assert upstream.last.extensions['timeout']['read'] == 7.0
