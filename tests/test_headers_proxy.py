"""Tests for header normalisation, header ordering, and proxy notation parsing."""

from __future__ import annotations

import string

import httpx
import pytest
from hypothesis import given, settings, strategies as st

from CurlFetch.errors import ProxyFormatError, RequestConstructionError
from CurlFetch.network.headers import normalize_headers, sort_headers
from CurlFetch.network.proxy import format_proxy_string


class TestNormalizeHeaders:
    """Every accepted header shape flattens to ordered pairs."""

    def test_mapping_with_repeated_values(self):
        pairs = normalize_headers({"Accept": "a/b", "X-Tag": ["one", "two"], "X-N": 3})
        assert pairs == [("Accept", "a/b"), ("X-Tag", "one"), ("X-Tag", "two"), ("X-N", "3")]

    def test_pairs_and_httpx_headers(self):
        assert normalize_headers([("a", "1"), ("a", "2")]) == [("a", "1"), ("a", "2")]
        headers = httpx.Headers([("x-a", "1"), ("x-a", "2")])
        assert normalize_headers(headers) == [("x-a", "1"), ("x-a", "2")]

    def test_none_is_empty(self):
        assert normalize_headers(None) == []

    @pytest.mark.parametrize("name", ["bad name", "x:y", "", "naïve"])
    def test_invalid_names_rejected(self, name):
        with pytest.raises(RequestConstructionError):
            normalize_headers({name: "v"})

    @pytest.mark.parametrize("value", ["a\r\nInjected: 1", "a\nb", "a\x00"])
    def test_line_breaks_rejected(self, value):
        with pytest.raises(RequestConstructionError):
            normalize_headers({"X-Ok": value})

    def test_malformed_entry_rejected(self):
        with pytest.raises(RequestConstructionError):
            normalize_headers([("only-name",)])


class TestSortHeaders:
    """Canonical ordering: priority table first, then alphabetical."""

    def test_priority_then_alphabetical(self):
        pairs = [
            ("X-Zeta", "1"),
            ("User-Agent", "ua"),
            ("accept", "*/*"),
            ("X-Alpha", "2"),
            ("Cookie", "c=1"),
        ]
        assert [name for name, _ in sort_headers(pairs)] == [
            "accept",
            "Cookie",
            "User-Agent",
            "X-Alpha",
            "X-Zeta",
        ]

    def test_repeated_headers_keep_relative_order(self):
        pairs = [("X-A", "2"), ("Accept", "x"), ("X-A", "1")]
        assert sort_headers(pairs) == [("Accept", "x"), ("X-A", "2"), ("X-A", "1")]


class TestFormatProxyString:
    """Proxy vendors' notations normalise to proxy URLs."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("127.0.0.1:8080", "http://127.0.0.1:8080"),
            ("proxy.local:3128:alice:pw", "http://alice:pw@proxy.local:3128"),
            ("alice:pw@proxy.local:3128", "http://alice:pw@proxy.local:3128"),
            ("socks5://proxy.local:1080", "socks5://proxy.local:1080"),
            ("HTTPS://alice:pw@proxy.local:443/", "https://alice:pw@proxy.local:443"),
        ],
    )
    def test_supported_notations(self, raw, expected):
        assert format_proxy_string(raw) == expected

    def test_explicit_scheme_overrides(self):
        assert format_proxy_string("http://h:1", scheme="socks5h") == "socks5h://h:1"

    @pytest.mark.parametrize(
        "raw",
        ["justahost", "h:0", "h:70000", "h:port", "h:1:user", ":pw@h:1", "a:b:c:d:e", "h:1:u:"],
    )
    def test_invalid_notations(self, raw):
        with pytest.raises(ProxyFormatError) as excinfo:
            format_proxy_string(raw)
        assert excinfo.value.proxy == raw
        assert excinfo.value.code == "ERR_INVALID_PROXY"

    @given(
        host=st.text(alphabet=string.ascii_lowercase + string.digits, min_size=1, max_size=20),
        port=st.integers(min_value=1, max_value=65535),
        user=st.text(alphabet=string.ascii_letters + string.digits, min_size=1, max_size=10),
        password=st.text(alphabet=string.ascii_letters + string.digits, min_size=1, max_size=10),
    )
    @settings(max_examples=100)
    def test_notations_agree(self, host, port, user, password):
        """Colon and at-sign notations describe the same proxy."""
        colon = format_proxy_string(f"{host}:{port}:{user}:{password}")
        at_sign = format_proxy_string(f"{user}:{password}@{host}:{port}")
        assert colon == at_sign == f"http://{user}:{password}@{host}:{port}"
        assert format_proxy_string(colon) == colon
