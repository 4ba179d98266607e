"""Tests for transport capability probing."""

from __future__ import annotations

import subprocess
from unittest.mock import patch

from CurlFetch.network.capabilities import (
    TransportCapabilities,
    parse_version_output,
    probe_capabilities,
)

OPENSSL_HTTP3 = (
    "curl 8.6.0 (x86_64-pc-linux-gnu) libcurl/8.6.0 OpenSSL/3.2.1 zlib/1.3 c-ares/1.26.0 "
    "nghttp2/1.59.0 ngtcp2/1.2.0 nghttp3/1.1.0\n"
    "Release-Date: 2024-01-31\n"
    "Features: alt-svc AsynchDNS HSTS HTTP2 HTTP3 HTTPS-proxy IPv6 Largefile libz SSL\n"
)

SECURE_TRANSPORT_OLD = (
    "curl 7.19 (x86_64-apple-darwin) libcurl/7.19 SecureTransport zlib/1.2.11\n"
    "Features: IPv6 Largefile libz SSL\n"
)


class TestParseVersionOutput:
    """Capabilities derived from ``--version`` text."""

    def test_full_featured_build(self):
        caps = parse_version_output(OPENSSL_HTTP3)
        assert caps == TransportCapabilities(
            version=(8, 6, 0),
            http2=True,
            http3=True,
            ciphers=True,
            dns_servers=True,
            dns_resolve=True,
            tcp_fast_open=True,
            tcp_no_delay=True,
        )
        assert caps.version_string == "8.6.0"

    def test_old_build_without_optional_features(self):
        caps = parse_version_output(SECURE_TRANSPORT_OLD)
        assert caps.version == (7, 19, 0)
        assert not caps.http2 and not caps.http3
        assert not caps.ciphers
        assert not caps.dns_servers
        assert not caps.dns_resolve
        assert not caps.tcp_fast_open
        assert caps.tcp_no_delay

    def test_unrecognised_output_is_empty(self):
        assert parse_version_output("not a transport") == TransportCapabilities()


class TestProbeCapabilities:
    """Probing runs once per binary and fails soft."""

    def test_probe_is_memoised(self):
        completed = subprocess.CompletedProcess(
            args=["curl", "--version"], returncode=0, stdout=OPENSSL_HTTP3.encode(), stderr=b""
        )
        with patch("CurlFetch.network.capabilities.subprocess.run", return_value=completed) as run:
            first = probe_capabilities("curl")
            second = probe_capabilities("curl")

        assert first is second
        assert first.http3
        run.assert_called_once()
        assert run.call_args.args[0] == ["curl", "--version"]

    def test_binaries_are_probed_separately(self):
        completed = subprocess.CompletedProcess(
            args=[], returncode=0, stdout=OPENSSL_HTTP3.encode(), stderr=b""
        )
        with patch("CurlFetch.network.capabilities.subprocess.run", return_value=completed) as run:
            probe_capabilities("curl")
            probe_capabilities("/opt/curl/bin/curl")
        assert run.call_count == 2

    def test_missing_binary_yields_empty_set(self):
        with patch(
            "CurlFetch.network.capabilities.subprocess.run",
            side_effect=FileNotFoundError("no such file"),
        ):
            caps = probe_capabilities("definitely-not-installed")
        assert caps == TransportCapabilities()

    def test_timeout_yields_empty_set(self):
        with patch(
            "CurlFetch.network.capabilities.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="curl", timeout=1),
        ):
            assert probe_capabilities("curl", timeout=1) == TransportCapabilities()
