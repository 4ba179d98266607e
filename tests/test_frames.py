"""
Response Frame Parser Tests

Tests cover:
- Splitting buffered output into frames (CRLF and LF separators)
- Dropping interim, CONNECT, and continue frames
- Redirect chain resolution
- Incremental head parsing over a chunked byte source
- Body replay, size limits, and close callbacks on the streamed body
"""

from __future__ import annotations

import asyncio

import pytest

from CurlFetch.errors import BodySizeExceededError, InvalidResponseError, TransportError
from CurlFetch.frames import (
    ResponseFrame,
    find_separator,
    find_status_line,
    parse_frames,
    parse_head,
    parse_stream_head,
    resolve_redirect_chain,
)
from tests.fixtures.fakes import JSON_OK, FakeByteStream, http_frame

# ============================================================================
# Scanning helpers
# ============================================================================


class TestScanning:
    """Status line and separator detection."""

    def test_status_line_must_start_a_line(self):
        raw = b"body mentions HTTP/1.1 here\nHTTP/2 200\r\n\r\n"
        assert find_status_line(raw) == raw.index(b"HTTP/2")

    def test_status_line_needs_version_digit(self):
        assert find_status_line(b"HTTP/x 200\r\n\r\n") == -1

    def test_crlf_separator_preferred(self):
        raw = b"HTTP/1.1 200 OK\nA: b\n\nx\r\n\r\n"
        assert find_separator(raw, 0) == (raw.index(b"\r\n\r\n"), 4)

    def test_lf_separator_fallback(self):
        raw = b"HTTP/1.1 200 OK\nA: b\n\nx"
        assert find_separator(raw, 0) == (raw.index(b"\n\n"), 2)
        assert find_separator(b"HTTP/1.1 200 OK", 0) == (-1, 0)

    def test_parse_head_skips_malformed_lines(self):
        status, headers = parse_head(b"HTTP/1.1 301 Moved\r\nLocation: /b\r\nnot-a-header\r\nX:y")
        assert status == 301
        assert headers == [("Location", "/b")]


# ============================================================================
# Buffered parsing
# ============================================================================


class TestParseFrames:
    """Buffered reconstruction of complete transport output."""

    def test_single_response(self):
        raw = http_frame(200, [("Content-Type", "text/plain"), ("X-A", "1")], b"hello\r\n\r\n")
        frames = parse_frames(raw)
        assert len(frames) == 1
        frame = frames[0]
        assert frame.status == 200
        assert frame.headers == [("Content-Type", "text/plain"), ("X-A", "1")]
        assert frame.body == b"hello"
        start, end = frame.body_range
        assert raw[start:end] == b"hello"

    def test_repeated_headers_are_kept(self):
        raw = http_frame(200, [("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")])
        assert parse_frames(raw)[0].headers == [("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")]

    def test_redirect_chain(self):
        raw = (
            http_frame(301, [("Location", "/b")])
            + http_frame(302, [("Location", "https://h/c")])
            + http_frame(200, [("Content-Type", "application/json")], b'{"a": 1}')
        )
        frames = parse_frames(raw)
        assert [frame.status for frame in frames] == [301, 302, 200]
        assert frames[-1].body == b'{"a": 1}'

        final_url, hops = resolve_redirect_chain("https://h/a", frames)
        assert final_url == "https://h/c"
        assert [hop.target for hop in hops] == ["https://h/b", "https://h/c"]
        assert [hop.source for hop in hops] == ["https://h/a", "https://h/b"]
        assert [hop.status for hop in hops] == [301, 302]

    def test_continue_frame_dropped(self):
        raw = http_frame(100) + http_frame(201, body=b"created")
        frames = parse_frames(raw)
        assert [frame.status for frame in frames] == [201]
        assert frames[0].body == b"created"

    def test_connect_frame_dropped(self):
        raw = http_frame(200, version="1.0") + http_frame(200, [("X-Upstream", "1")], b"ok")
        frames = parse_frames(raw)
        assert len(frames) == 1
        assert frames[0].header("x-upstream") == "1"

    def test_informational_only_output_keeps_last_frame(self):
        frames = parse_frames(http_frame(100) + http_frame(103, [("Link", "</a.css>")]))
        assert [frame.status for frame in frames] == [103]

    def test_lf_only_output(self):
        raw = http_frame(404, [("Content-Type", "text/plain")], b"missing\n", newline=b"\n")
        frame = parse_frames(raw)[0]
        assert frame.status == 404
        assert frame.headers == [("Content-Type", "text/plain")]
        assert frame.body == b"missing"

    def test_missing_separator_means_empty_body(self):
        frame = parse_frames(b"HTTP/1.1 204 No Content\r\nX-A: 1")[0]
        assert frame.status == 204
        assert frame.headers == [("X-A", "1")]
        assert frame.body == b""

    def test_status_code_falls_back_to_500(self):
        assert parse_frames(b"HTTP/1.1 \r\n\r\nbody")[0].status == 500

    def test_body_mentioning_status_prefix_is_not_split(self):
        raw = http_frame(200, body=b"see HTTP/1.1 for details")
        assert parse_frames(raw)[0].body == b"see HTTP/1.1 for details"

    def test_output_without_status_line_raises(self):
        with pytest.raises(InvalidResponseError) as excinfo:
            parse_frames(b"<html>not a response</html>", request="req")
        assert excinfo.value.raw == "<html>not a response</html>"
        assert excinfo.value.request == "req"

    def test_frame_helpers(self):
        frame = ResponseFrame(302, [("location", "/x")])
        assert frame.is_redirect
        assert frame.location == "/x"
        assert not ResponseFrame(302).is_redirect
        assert ResponseFrame(101).is_informational


class TestResolveRedirectChain:
    """Locations resolve against the URL that produced them."""

    def test_relative_locations(self):
        frames = [
            ResponseFrame(301, [("Location", "../up")]),
            ResponseFrame(307, [("Location", "?page=2")]),
            ResponseFrame(200),
        ]
        final_url, hops = resolve_redirect_chain("https://h/a/b/c", frames)
        assert [hop.target for hop in hops] == ["https://h/a/up", "https://h/a/up?page=2"]
        assert final_url == "https://h/a/up?page=2"

    def test_single_frame_has_no_hops(self):
        assert resolve_redirect_chain("https://h/", [ResponseFrame(200)]) == ("https://h/", [])


# ============================================================================
# Streaming parsing
# ============================================================================


async def read_all(body) -> bytes:
    chunks = []
    async for chunk in body:
        chunks.append(chunk)
    return b"".join(chunks)


class TestParseStreamHead:
    """Incremental parsing over a chunked byte source."""

    def test_headers_split_across_chunks(self):
        async def scenario():
            source = FakeByteStream(
                [
                    b"HTTP/1.1 301 X\r\nLoc",
                    b"ation: /b\r\n\r\nHTTP/1.1 200 X\r\nContent-Type: text/plain\r\n\r\nhel",
                    b"lo",
                ]
            )
            head = await parse_stream_head(source, "https://h/a")
            return head, await read_all(head.body)

        head, body = asyncio.run(scenario())
        assert head.status == 200
        assert head.url == "https://h/b"
        assert head.redirects == ["https://h/b"]
        assert head.headers == [("Content-Type", "text/plain")]
        assert body == b"hello"

    def test_interim_and_connect_frames_skipped(self):
        async def scenario():
            source = FakeByteStream(
                [b"HTTP/1.1 200 Connection established\r\n\r\n", http_frame(100) + JSON_OK]
            )
            head = await parse_stream_head(source, "https://h/")
            return head, await read_all(head.body)

        head, body = asyncio.run(scenario())
        assert head.status == 200
        assert head.hops == []
        assert body == b'{"ok": true}\r\n'

    def test_trailing_redirect_is_final_response(self):
        async def scenario():
            source = FakeByteStream([http_frame(302, [("Location", "/x")], b"moved")])
            head = await parse_stream_head(source, "https://h/")
            return head, await read_all(head.body)

        head, body = asyncio.run(scenario())
        assert head.status == 302
        assert head.redirects == []
        assert body == b"moved"

    def test_single_frame_short_body(self):
        async def scenario():
            source = FakeByteStream([http_frame(200, body=b"abc")])
            head = await parse_stream_head(source, "https://h/")
            return head, await read_all(head.body)

        head, body = asyncio.run(scenario())
        assert head.status == 200
        assert body == b"abc"

    @pytest.mark.parametrize(
        "chunks",
        [
            [http_frame(200, [("X-A", "1")], b"HTTP/ explained")],
            [http_frame(200, [("X-A", "1")], b"HTTP/"), b" explained"],
        ],
    )
    def test_body_starting_with_status_prefix_matches_buffered(self, chunks):
        async def scenario():
            head = await parse_stream_head(FakeByteStream(list(chunks)), "https://h/")
            return head, await read_all(head.body)

        head, body = asyncio.run(scenario())
        (frame,) = parse_frames(b"".join(chunks))
        assert head.status == frame.status == 200
        assert head.headers == frame.headers == [("X-A", "1")]
        assert body == frame.body == b"HTTP/ explained"

    def test_status_line_split_across_small_chunks(self):
        hop = http_frame(301, [("Location", "/b")], b"x" * 5000 + b"\r\n")
        raw = hop + http_frame(200, body=b"ok")
        chunks = [raw[i : i + 7] for i in range(0, len(raw), 7)]

        async def scenario():
            source = FakeByteStream(chunks)
            head = await parse_stream_head(source, "https://h/a", chunk_size=7)
            return head, await read_all(head.body), source.reads

        head, body, reads = asyncio.run(scenario())
        assert head.status == 200
        assert head.redirects == ["https://h/b"]
        assert body == b"ok"
        assert reads == len(chunks) + 1

    def test_truncated_head_raises_and_closes(self):
        source = FakeByteStream([b"HTTP/1.1 200 X\r\nContent-"])
        with pytest.raises(InvalidResponseError):
            asyncio.run(parse_stream_head(source, "https://h/"))
        assert source.closed

    def test_garbage_raises(self):
        with pytest.raises(InvalidResponseError):
            asyncio.run(parse_stream_head(FakeByteStream([b"garbage"]), "https://h/"))


class TestBodyStream:
    """Streamed body replay, limits, and close callbacks."""

    def test_limit_exceeded_closes_source(self):
        closed = []

        async def scenario(source):
            head = await parse_stream_head(
                source, "https://h/", limit=6, on_close=lambda: closed.append(True)
            )
            assert await head.body.read() == b"abcde"
            await head.body.read()

        source = FakeByteStream([http_frame(200, body=b"abcde"), b"fg"])
        with pytest.raises(BodySizeExceededError) as excinfo:
            asyncio.run(scenario(source))
        assert excinfo.value.limit == 6
        assert excinfo.value.size == 7
        assert source.closed
        assert closed == [True]

    def test_on_close_runs_once_on_aclose(self):
        closed = []

        async def scenario(source):
            head = await parse_stream_head(source, "https://h/", on_close=lambda: closed.append(1))
            await head.body.aclose()
            await head.body.aclose()
            return await head.body.read()

        source = FakeByteStream([JSON_OK, b"more"])
        assert asyncio.run(scenario(source)) == b""
        assert source.closed
        assert closed == [1]

    def test_on_close_runs_on_source_error(self):
        closed = []

        async def scenario(source):
            head = await parse_stream_head(source, "https://h/", on_close=lambda: closed.append(1))
            await read_all(head.body)

        source = FakeByteStream(
            [http_frame(200, body=b"partial")],
            error=TransportError("Transport exited with code 18", exit_code=18),
        )
        with pytest.raises(TransportError) as excinfo:
            asyncio.run(scenario(source))
        assert excinfo.value.exit_code == 18
        assert closed == [1]

    def test_bytes_received_counts_prefix(self):
        async def scenario():
            head = await parse_stream_head(
                FakeByteStream([http_frame(200, body=b"12"), b"345"]), "https://h/"
            )
            await read_all(head.body)
            return head.body.bytes_received

        assert asyncio.run(scenario()) == 5
