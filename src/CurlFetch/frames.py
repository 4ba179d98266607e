# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.frames",
#   "purpose": "Reconstruct HTTP responses from the transport's concatenated header-and-body output",
#   "sections": [
#     {"id": "responseframe", "name": "ResponseFrame", "anchor": "class-responseframe", "kind": "class"},
#     {"id": "parse-frames", "name": "parse_frames", "anchor": "function-parse-frames", "kind": "function"},
#     {"id": "resolve-redirect-chain", "name": "resolve_redirect_chain", "anchor": "function-resolve-redirect-chain", "kind": "function"},
#     {"id": "bodystream", "name": "BodyStream", "anchor": "class-bodystream", "kind": "class"},
#     {"id": "parse-stream-head", "name": "parse_stream_head", "anchor": "function-parse-stream-head", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Response frame parsing.

With ``-i`` the transport writes every response it saw (interim
``1xx`` responses, each followed redirect, proxy ``CONNECT`` replies, and
the final response) to stdout back to back, each as a status line, header
lines, a blank line, and a body. This module splits that byte stream back
into :class:`ResponseFrame` values.

Buffered parsing (:func:`parse_frames`) walks the complete output with an
explicit offset: find a status line at a line start, find the header/body
separator (CRLF CRLF, falling back to LF LF), and take the body up to the
next status line. Streaming parsing (:func:`parse_stream_head`) applies
the same rules incrementally and hands back the final response's body as
a :class:`BodyStream`.

Frame filtering rules:

- the first frame of a multi-frame sequence is dropped when it carries
  no ``Location`` (a leading ``CONNECT``/continue reply)
- informational ``1xx`` frames are dropped
- every remaining frame but the last is a redirect hop
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, List, Optional, Tuple, Union

from CurlFetch.errors import BodySizeExceededError, InvalidResponseError
from CurlFetch.network.policy import STREAM_CHUNK_SIZE
from CurlFetch.network.redirect import RedirectHop, resolve_location
from CurlFetch.network.transport import ByteStream

logger = logging.getLogger(__name__)

_STATUS_PREFIX = b"HTTP/"
#: ``HTTP/`` plus the version digit that makes it a status line
_STATUS_PEEK = len(_STATUS_PREFIX) + 1
#: Bytes rescanned after each read so a match split across chunks is found
_SCAN_OVERLAP = _STATUS_PEEK
_STATUS_CODE = re.compile(r"^HTTP/\S+\s+(\d{3})")
_CRLF_SEPARATOR = b"\r\n\r\n"
_LF_SEPARATOR = b"\n\n"
_WHITESPACE = b" \t\r\n\x0b\x0c"

HeaderList = List[Tuple[str, str]]


@dataclass(frozen=True)
class ResponseFrame:
    """One response echoed by the transport.

    Attributes:
        status: Status code (500 when the status line has none).
        headers: Header pairs in received order, names as sent.
        body: Body bytes with trailing whitespace removed.
        body_range: ``(start, end)`` offsets of ``body`` in the raw output.
    """

    status: int
    headers: HeaderList = field(default_factory=list)
    body: bytes = b""
    body_range: Tuple[int, int] = (0, 0)

    def header(self, name: str) -> Optional[str]:
        """Return the first value for ``name`` (case-insensitive)."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    @property
    def location(self) -> Optional[str]:
        return self.header("location")

    @property
    def is_informational(self) -> bool:
        return 100 <= self.status < 200

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400 and bool(self.location)


# ============================================================================
# Shared scanning helpers
# ============================================================================


def find_status_line(raw: Union[bytes, bytearray], start: int = 0) -> int:
    """Return the offset of the next line-start ``HTTP/<digit>`` at or after ``start``.

    Returns ``-1`` when there is none.
    """
    position = start
    while True:
        index = raw.find(_STATUS_PREFIX, position)
        if index == -1:
            return -1
        at_line_start = index == 0 or raw[index - 1 : index] == b"\n"
        digit = raw[index + 5 : index + 6]
        if at_line_start and digit.isdigit():
            return index
        position = index + 1


def find_separator(raw: Union[bytes, bytearray], start: int) -> Tuple[int, int]:
    """Locate the header/body separator after ``start``.

    Returns:
        ``(index, length)`` of the separator, or ``(-1, 0)`` when absent.
    """
    index = raw.find(_CRLF_SEPARATOR, start)
    if index != -1:
        return index, len(_CRLF_SEPARATOR)
    index = raw.find(_LF_SEPARATOR, start)
    if index != -1:
        return index, len(_LF_SEPARATOR)
    return -1, 0


def parse_head(block: bytes) -> Tuple[int, HeaderList]:
    """Split a header block into its status code and header pairs.

    Example:
        >>> parse_head(b"HTTP/2 404\\r\\ncontent-type: text/plain\\r\\nx-odd")
        (404, [('content-type', 'text/plain')])
    """
    text = block.decode("latin-1")
    lines = re.split(r"\r?\n", text)
    match = _STATUS_CODE.match(lines[0]) if lines else None
    status = int(match.group(1)) if match else 500
    headers: HeaderList = []
    for line in lines[1:]:
        name, sep, value = line.partition(": ")
        if sep:
            headers.append((name, value))
    return status, headers


# ============================================================================
# Buffered parsing
# ============================================================================


def parse_frames(raw: bytes, *, request: Optional[Any] = None) -> List[ResponseFrame]:
    """Split complete transport output into response frames.

    Args:
        raw: Everything the transport wrote to stdout.
        request: Request attached to a raised error.

    Returns:
        Frames in order; the last one is the final response.

    Raises:
        InvalidResponseError: If ``raw`` holds no status line at all.
    """
    frames: List[ResponseFrame] = []
    start = find_status_line(raw)
    while start != -1:
        sep_index, sep_length = find_separator(raw, start)
        if sep_index == -1:
            head_end = body_start = len(raw)
        else:
            head_end, body_start = sep_index, sep_index + sep_length
        status, headers = parse_head(raw[start:head_end])

        next_start = find_status_line(raw, body_start)
        body_end = len(raw) if next_start == -1 else next_start
        body = raw[body_start:body_end].rstrip(_WHITESPACE)
        frames.append(
            ResponseFrame(
                status=status,
                headers=headers,
                body=body,
                body_range=(body_start, body_start + len(body)),
            )
        )
        start = next_start

    if not frames:
        raise InvalidResponseError(raw.decode("latin-1"), request=request)

    if len(frames) > 1 and frames[0].location is None:
        frames = frames[1:]
    kept = [frame for frame in frames if not frame.is_informational]
    return kept or frames[-1:]


def resolve_redirect_chain(url: str, frames: List[ResponseFrame]) -> Tuple[str, List[RedirectHop]]:
    """Walk redirect frames from ``url`` to the final response.

    Every frame but the last that carries a ``Location`` is a hop whose
    target is resolved against the URL that produced it.

    Returns:
        ``(final_url, hops)``

    Example:
        >>> frames = [
        ...     ResponseFrame(301, [("Location", "/b")]),
        ...     ResponseFrame(302, [("Location", "/c")]),
        ...     ResponseFrame(200),
        ... ]
        >>> final_url, hops = resolve_redirect_chain("https://h/a", frames)
        >>> final_url, [hop.target for hop in hops]
        ('https://h/c', ['https://h/b', 'https://h/c'])
    """
    current = url
    hops: List[RedirectHop] = []
    for frame in frames[:-1]:
        location = frame.location
        if not location:
            continue
        target = resolve_location(current, location)
        hops.append(RedirectHop(source=current, status=frame.status, target=target))
        current = target
    return current, hops


# ============================================================================
# Streaming parsing
# ============================================================================


class BodyStream:
    """Final response body, read from the transport as it arrives.

    Bytes already pulled past the header block are replayed first. When a
    size limit is set the stream is closed and
    :class:`~CurlFetch.errors.BodySizeExceededError` raised as soon as the
    running total exceeds it.

    ``on_close`` runs exactly once, when the body ends, fails, or is closed.
    """

    def __init__(
        self,
        source: ByteStream,
        prefix: bytes = b"",
        *,
        limit: Optional[int] = None,
        request: Optional[Any] = None,
        chunk_size: int = STREAM_CHUNK_SIZE,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._source = source
        self._prefix = prefix
        self._limit = limit
        self._request = request
        self._chunk_size = chunk_size
        self._on_close = on_close
        self._received = 0
        self._done = False

    @property
    def bytes_received(self) -> int:
        return self._received

    def _finalize(self) -> None:
        self._done = True
        callback, self._on_close = self._on_close, None
        if callback is not None:
            callback()

    async def read(self) -> bytes:
        """Return the next chunk, or ``b""`` at the end of the body."""
        if self._done:
            return b""
        if self._prefix:
            chunk, self._prefix = self._prefix, b""
        else:
            try:
                chunk = await self._source.read(self._chunk_size)
            except BaseException:
                self._finalize()
                raise
        if not chunk:
            self._finalize()
            return b""
        self._received += len(chunk)
        if self._limit is not None and self._received > self._limit:
            self._finalize()
            await self._source.aclose()
            raise BodySizeExceededError(self._received, self._limit, request=self._request)
        return chunk

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read()
            if not chunk:
                return
            yield chunk

    async def aclose(self) -> None:
        try:
            await self._source.aclose()
        finally:
            self._finalize()


@dataclass
class StreamHead:
    """Status, headers, and redirect trail of a streamed response."""

    url: str
    status: int
    headers: HeaderList
    hops: List[RedirectHop]
    body: BodyStream

    @property
    def redirects(self) -> List[str]:
        return [hop.target for hop in self.hops]


class _ScratchBuffer:
    """Growable buffer fed from a :class:`ByteStream`."""

    def __init__(self, source: ByteStream, chunk_size: int) -> None:
        self.source = source
        self.data = bytearray()
        self.eof = False
        self._chunk_size = chunk_size

    async def fill(self) -> bool:
        """Read one more chunk; return False at end of stream."""
        if self.eof:
            return False
        chunk = await self.source.read(self._chunk_size)
        if not chunk:
            self.eof = True
            return False
        self.data += chunk
        return True


async def parse_stream_head(
    source: ByteStream,
    url: str,
    *,
    limit: Optional[int] = None,
    request: Optional[Any] = None,
    chunk_size: int = STREAM_CHUNK_SIZE,
    on_close: Optional[Callable[[], None]] = None,
) -> StreamHead:
    """Read frames from ``source`` until the final response's headers.

    Informational frames are skipped, redirect frames are skipped and
    recorded, and a leading frame immediately followed by another status
    line is skipped. A redirect frame that turns out to be the last frame
    in the stream is the final response.

    Raises:
        InvalidResponseError: If the stream ends before a complete header block.
    """
    buffer = _ScratchBuffer(source, chunk_size)
    current = url
    hops: List[RedirectHop] = []
    first = True

    while True:
        start, scanned = -1, 0
        while True:
            if start == -1:
                start = find_status_line(buffer.data, scanned)
            if start != -1:
                sep_index, sep_length = find_separator(buffer.data, max(start, scanned))
                if sep_index != -1:
                    break
            scanned = max(0, len(buffer.data) - _SCAN_OVERLAP)
            if not await buffer.fill():
                await source.aclose()
                raise InvalidResponseError(bytes(buffer.data).decode("latin-1"), request=request)

        body_start = sep_index + sep_length
        status, headers = parse_head(bytes(buffer.data[start:sep_index]))
        frame = ResponseFrame(status=status, headers=headers)

        skip = frame.is_informational
        if not skip and first and frame.location is None:
            while len(buffer.data) - body_start < _STATUS_PEEK and await buffer.fill():
                pass
            skip = find_status_line(buffer.data, body_start) == body_start

        if not skip and frame.is_redirect:
            next_start = find_status_line(buffer.data, body_start)
            while next_start == -1:
                scanned = max(body_start, len(buffer.data) - _SCAN_OVERLAP)
                if not await buffer.fill():
                    break
                next_start = find_status_line(buffer.data, scanned)
            if next_start != -1:
                target = resolve_location(current, frame.location or "")
                hops.append(RedirectHop(source=current, status=status, target=target))
                logger.debug(
                    "Skipping streamed redirect frame",
                    extra={"status": status, "target": target, "hop": len(hops)},
                )
                current = target
                del buffer.data[:next_start]
                first = False
                continue

        if skip:
            del buffer.data[:body_start]
            first = False
            continue

        prefix = bytes(buffer.data[body_start:])
        body = BodyStream(
            source,
            prefix,
            limit=limit,
            request=request,
            chunk_size=chunk_size,
            on_close=on_close,
        )
        return StreamHead(url=current, status=status, headers=headers, hops=hops, body=body)


__all__ = [
    "BodyStream",
    "HeaderList",
    "ResponseFrame",
    "StreamHead",
    "find_separator",
    "find_status_line",
    "parse_frames",
    "parse_head",
    "parse_stream_head",
    "resolve_redirect_chain",
]
