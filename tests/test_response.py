"""Tests for response envelopes."""

from __future__ import annotations

import pytest

from CurlFetch.response import ResponseEnvelope, charset_of, is_text_content_type


def envelope(status=200, headers=(), body=b"", **kwargs) -> ResponseEnvelope:
    return ResponseEnvelope(
        url="https://h/", status=status, headers=list(headers), body=body, **kwargs
    )


class TestEnvelopeStatus:
    """Derived status properties."""

    @pytest.mark.parametrize(
        "status,ok,kind",
        [
            (200, True, "default"),
            (204, True, "default"),
            (304, False, "default"),
            (404, False, "error"),
            (503, False, "error"),
        ],
    )
    def test_ok_and_type(self, status, ok, kind):
        result = envelope(status)
        assert result.ok is ok
        assert result.type == kind

    def test_headers_are_case_insensitive(self):
        result = envelope(headers=[("Set-Cookie", "a=1"), ("set-cookie", "b=2")])
        assert result.headers.get_list("SET-COOKIE") == ["a=1", "b=2"]

    def test_repr(self):
        assert repr(envelope(201)) == "<ResponseEnvelope [201] https://h/>"


class TestDecoding:
    """Automatic body decoding by content type."""

    def test_json_is_parsed(self):
        result = envelope(headers=[("Content-Type", "application/json")], body=b'{"a": [1]}')
        assert result.response == {"a": [1]}
        assert result.json() is result.json()

    def test_json_parsing_can_be_disabled(self):
        result = envelope(
            headers=[("Content-Type", "application/json")], body=b'{"a": 1}', parse_json=False
        )
        assert result.response == '{"a": 1}'

    def test_invalid_json_falls_back_to_text(self):
        result = envelope(headers=[("Content-Type", "application/json")], body=b"{oops")
        assert result.response == "{oops"
        with pytest.raises(ValueError):
            result.json()

    def test_text_uses_declared_charset(self):
        body = "café".encode("latin-1")
        result = envelope(headers=[("Content-Type", "text/plain; charset=ISO-8859-1")], body=body)
        assert result.response == "café"

    def test_binary_content_stays_bytes(self):
        result = envelope(headers=[("Content-Type", "image/png")], body=b"\x89PNG")
        assert result.response == b"\x89PNG"
        assert result.content == b"\x89PNG"

    def test_missing_content_type_is_bytes(self):
        assert envelope(body=b"raw").response == b"raw"

    @pytest.mark.parametrize(
        "content_type,expected",
        [
            ("text/html", True),
            ("application/xml", True),
            ("application/javascript", True),
            ("application/vnd.api+json", True),
            ("application/octet-stream", False),
        ],
    )
    def test_is_text_content_type(self, content_type, expected):
        assert is_text_content_type(content_type) is expected

    def test_charset_of(self):
        assert charset_of('text/html; charset="UTF-8"') == "utf-8"
        assert charset_of("text/html; charset=bogus") == "utf-8"
        assert charset_of("text/html") == "utf-8"
