"""Unit tests for ProxySettings."""
from dataclasses import FrozenInstanceError

import pytest

from api_proxy.routing.headers import DEFAULT_ALLOWED_HEADERS
from api_proxy.routing.table import DEFAULT_ROUTES
from api_proxy.settings import ProxySettings


class TestDefaults:

    def test_values(self):
        s = ProxySettings()
        assert s.host == '0.0.0.0'
        assert s.port == 8080
        assert s.workers == 4
        assert s.max_body_size_mb == 10
        assert s.request_timeout == 3600.0
        assert s.connect_timeout == 10.0
        assert s.keepalive_expiry == 60.0
        assert s.max_idle_connections == 20
        assert s.routes == DEFAULT_ROUTES
        assert s.allowed_headers == DEFAULT_ALLOWED_HEADERS

    def test_defaults_are_valid(self):
        assert ProxySettings().validate() == []

    def test_max_body_size_in_bytes(self):
        assert ProxySettings(max_body_size_mb=2).max_body_size == 2 * 1024 * 1024

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            ProxySettings().port = 1


class TestValidate:

    @pytest.mark.parametrize('overrides,fragment', [
        ({'port': 0}, 'port'),
        ({'port': 70000}, 'port'),
        ({'workers': 0}, 'workers'),
        ({'max_body_size_mb': 0}, 'max_body_size_mb'),
        ({'request_timeout': 0}, 'request_timeout'),
        ({'connect_timeout': -1}, 'connect_timeout'),
        ({'keepalive_expiry': -1}, 'keepalive_expiry'),
        ({'max_idle_connections': -1}, 'max_idle_connections'),
        ({'log_format': 'xml'}, 'log_format'),
        ({'routes': {}}, 'route'),
    ])
    def test_reports_error(self, overrides, fragment):
        errors = ProxySettings(**overrides).validate()
        assert len(errors) == 1
        assert fragment in errors[0]

    def test_collects_all_errors(self):
        assert len(ProxySettings(port=0, workers=0).validate()) == 2


class TestFromEnv:

    def test_empty_env_gives_defaults(self):
        s = ProxySettings.from_env({})
        assert s.port == 8080
        assert s.request_timeout == 3600.0
        assert s.metrics_enabled is True

    def test_reads_every_variable(self):
        s = ProxySettings.from_env({
            'PROXY_HOST': '127.0.0.1',
            'PROXY_PORT': '9000',
            'PROXY_WORKERS': '2',
            'MAX_BODY_SIZE_MB': '5',
            'REQUEST_TIMEOUT': '30',
            'CONNECT_TIMEOUT': '2.5',
            'KEEPALIVE_EXPIRY': '15',
            'POOL_MAX_IDLE_PER_HOST': '8',
            'LOG_LEVEL': 'debug',
            'LOG_FORMAT': 'Console',
            'METRICS_ENABLED': 'false',
        })
        assert s.host == '127.0.0.1'
        assert s.port == 9000
        assert s.workers == 2
        assert s.max_body_size_mb == 5
        assert s.request_timeout == 30.0
        assert s.connect_timeout == 2.5
        assert s.keepalive_expiry == 15.0
        assert s.max_idle_connections == 8
        assert s.log_level == 'DEBUG'
        assert s.log_format == 'console'
        assert s.metrics_enabled is False

    def test_blank_value_uses_default(self):
        assert ProxySettings.from_env({'PROXY_PORT': '  '}).port == 8080

    @pytest.mark.parametrize('name,value', [
        ('PROXY_PORT', 'eighty'),
        ('PROXY_WORKERS', '1.5'),
        ('REQUEST_TIMEOUT', 'forever'),
    ])
    def test_malformed_number_names_variable(self, name, value):
        with pytest.raises(ValueError, match=name):
            ProxySettings.from_env({name: value})

    @pytest.mark.parametrize('value', ['1', 'true', 'YES', 'on'])
    def test_metrics_truthy_values(self, value):
        assert ProxySettings.from_env({'METRICS_ENABLED': value}).metrics_enabled is True

    def test_routes_are_read_only(self):
        s = ProxySettings.from_env({})
        with pytest.raises(TypeError):
            s.routes['/new'] = 'https://new.example'
