"""
Settings and Logging Tests

Tests cover:
- Defaults, environment layering, and validation of ClientSettings
- Configuration fingerprints
- JSON log output and secret masking
"""

from __future__ import annotations

import io
import json
import logging

import pytest
from pydantic import ValidationError

from CurlFetch.logging_config import (
    LOGGER_NAME,
    generate_correlation_id,
    mask_sensitive_data,
    mask_url_credentials,
    setup_logging,
)
from CurlFetch.settings import (
    CacheMode,
    ClientSettings,
    LogFormat,
    LogLevel,
    TLSVersion,
    get_settings,
)


class TestClientSettings:
    """Typed configuration with CURLFETCH_ environment overrides."""

    def test_defaults(self):
        settings = ClientSettings()
        assert settings.binary == "curl"
        assert settings.max_concurrent_requests == 250
        assert settings.tls_versions == (TLSVersion.TLS1_2, TLSVersion.TLS1_3)
        assert settings.cache_mode is CacheMode.NONE
        assert settings.default_user_agent.startswith("curlfetch/")
        assert settings.max_body_size_bytes is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CURLFETCH_MAX_CONCURRENT_REQUESTS", "3")
        monkeypatch.setenv("CURLFETCH_CACHE_MODE", "redis")
        monkeypatch.setenv("CURLFETCH_TLS_VERSIONS", "[771, 772]")
        settings = ClientSettings()
        assert settings.max_concurrent_requests == 3
        assert settings.cache_mode is CacheMode.REDIS
        assert settings.tls_versions == (TLSVersion.TLS1_2, TLSVersion.TLS1_3)

    def test_kwargs_beat_environment(self, monkeypatch):
        monkeypatch.setenv("CURLFETCH_BINARY", "/usr/bin/curl")
        assert ClientSettings(binary="/opt/curl").binary == "/opt/curl"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1.2,1.3", (TLSVersion.TLS1_2, TLSVersion.TLS1_3)),
            (["tlsv1.3"], (TLSVersion.TLS1_3,)),
            ([1.1], (TLSVersion.TLS1_1,)),
            (["0x0301"], (TLSVersion.TLS1_0,)),
        ],
    )
    def test_tls_version_spellings(self, value, expected):
        assert ClientSettings(tls_versions=value).tls_versions == expected

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"tls_versions": ""},
            {"max_concurrent_requests": 0},
            {"max_time": 0},
            {"binary": "   "},
            {"cache_mode": "memcached"},
            {"max_body_size_mb": -1},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValidationError):
            ClientSettings(**kwargs)

    def test_body_size_bytes(self):
        assert ClientSettings(max_body_size_mb=1.5).max_body_size_bytes == 1572864

    def test_config_hash_tracks_values(self):
        assert ClientSettings().config_hash() == ClientSettings().config_hash()
        assert ClientSettings().config_hash() != ClientSettings(max_time=30).config_hash()
        assert len(ClientSettings().config_hash()) == 16

    def test_get_settings_is_memoised(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("CURLFETCH_BINARY", "other")
        assert get_settings() is first
        get_settings.cache_clear()
        assert get_settings().binary == "other"


class TestLogging:
    """Structured logging setup and masking."""

    def teardown_method(self):
        logger = logging.getLogger(LOGGER_NAME)
        for handler in list(logger.handlers):
            if getattr(handler, "_curlfetch_managed", False):
                logger.removeHandler(handler)

    def test_json_records_include_extra_fields(self):
        stream = io.StringIO()
        setup_logging(LogLevel.DEBUG, LogFormat.JSON, stream=stream)
        logging.getLogger("CurlFetch.client").debug(
            "Request completed",
            extra={"status": 200, "url": "https://u:p@h/x", "authorization": "Bearer t"},
        )
        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["message"] == "Request completed"
        assert record["level"] == "DEBUG"
        assert record["logger"] == "CurlFetch.client"
        assert record["status"] == 200
        assert record["url"] == "https://***@h/x"
        assert record["authorization"] == "***masked***"

    def test_setup_replaces_managed_handlers(self):
        setup_logging("INFO", "console", stream=io.StringIO())
        logger = setup_logging("WARNING", "console", stream=io.StringIO())
        managed = [h for h in logger.handlers if getattr(h, "_curlfetch_managed", False)]
        assert len(managed) == 1
        assert logger.level == logging.WARNING

    def test_console_format(self):
        stream = io.StringIO()
        setup_logging("INFO", "console", stream=stream)
        logging.getLogger("CurlFetch.network.transport").warning("Transport failed")
        assert stream.getvalue().strip() == "WARNING CurlFetch.network.transport: Transport failed"

    def test_masking_helpers(self):
        assert mask_sensitive_data({"Cookie": "a=1", "n": 1}) == {"Cookie": "***masked***", "n": 1}
        assert mask_url_credentials("via socks5://a:b@p:1080") == "via socks5://***@p:1080"
        assert mask_url_credentials("https://h/x") == "https://h/x"

    def test_correlation_ids_are_unique(self):
        ids = {generate_correlation_id() for _ in range(100)}
        assert len(ids) == 100
