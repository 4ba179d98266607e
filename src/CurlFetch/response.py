# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.response",
#   "purpose": "Response envelopes returned to callers for buffered and streamed fetches",
#   "sections": [
#     {"id": "responseenvelope", "name": "ResponseEnvelope", "anchor": "class-responseenvelope", "kind": "class"},
#     {"id": "streamingresponseenvelope", "name": "StreamingResponseEnvelope", "anchor": "class-streamingresponseenvelope", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Response envelopes.

A :class:`ResponseEnvelope` is what a buffered fetch returns: the final
URL, status, case-insensitive headers, raw body bytes, and the bookkeeping
the orchestrator adds (``cached``, redirect hops, elapsed seconds). Text,
JSON, and the automatically decoded ``response`` view are computed on
first access and memoised; nothing else on the envelope changes after
construction.

A :class:`StreamingResponseEnvelope` carries the same head information
but exposes the body as an asynchronous byte iterator.
"""

from __future__ import annotations

import codecs
import json
import re
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple, Union

import httpx

from CurlFetch.frames import BodyStream

_CHARSET = re.compile(r"charset=\"?([\w.:-]+)\"?", re.IGNORECASE)
_TEXT_MARKERS = ("json", "xml", "javascript")

Redirects = List[Union[str, "ResponseEnvelope"]]


def is_text_content_type(content_type: str) -> bool:
    """Return True for content types whose body is decoded as text.

    Examples:
        >>> is_text_content_type("application/problem+json")
        True
        >>> is_text_content_type("image/png")
        False
    """
    lowered = content_type.lower()
    return lowered.startswith("text/") or any(marker in lowered for marker in _TEXT_MARKERS)


def charset_of(content_type: str, default: str = "utf-8") -> str:
    match = _CHARSET.search(content_type)
    if match:
        try:
            return codecs.lookup(match.group(1)).name
        except LookupError:
            pass
    return default


class _EnvelopeHead:
    """Fields shared by buffered and streamed envelopes."""

    def __init__(
        self,
        *,
        url: str,
        status: int,
        headers: Union[httpx.Headers, Sequence[Tuple[str, str]]],
        redirects: Optional[Redirects] = None,
        elapsed: float = 0.0,
        request: Optional[Any] = None,
    ) -> None:
        self.url = url
        self.status = status
        if not isinstance(headers, httpx.Headers):
            headers = httpx.Headers(list(headers))
        self.headers = headers
        self.redirects: Redirects = list(redirects or [])
        self.elapsed = elapsed
        self.request = request

    @property
    def ok(self) -> bool:
        """True for 2xx statuses."""
        return 200 <= self.status < 300

    @property
    def type(self) -> str:
        """``"error"`` for 4xx and 5xx statuses, ``"default"`` otherwise."""
        return "error" if 400 <= self.status < 600 else "default"

    @property
    def redirected(self) -> bool:
        return bool(self.redirects)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} [{self.status}] {self.url}>"


class ResponseEnvelope(_EnvelopeHead):
    """Buffered response returned by :meth:`CurlFetch.client.CurlClient.fetch`.

    Attributes:
        url: Final URL after redirects.
        status: Final status code.
        headers: Case-insensitive :class:`httpx.Headers`.
        body: Raw body bytes.
        cached: True when served from the cache store.
        redirects: Hop targets as URLs, or nested envelopes per hop.
        elapsed: Seconds from call start to envelope construction.
        request: The request descriptor that produced the response.

    Examples:
        >>> envelope = ResponseEnvelope(
        ...     url="https://h/",
        ...     status=200,
        ...     headers=[("Content-Type", "application/json")],
        ...     body=b'{"a": 1}',
        ... )
        >>> envelope.json()
        {'a': 1}
        >>> envelope.headers["content-type"]
        'application/json'
    """

    def __init__(
        self,
        *,
        url: str,
        status: int,
        headers: Union[httpx.Headers, Sequence[Tuple[str, str]]],
        body: bytes = b"",
        cached: bool = False,
        redirects: Optional[Redirects] = None,
        elapsed: float = 0.0,
        request: Optional[Any] = None,
        parse_json: bool = True,
    ) -> None:
        super().__init__(
            url=url,
            status=status,
            headers=headers,
            redirects=redirects,
            elapsed=elapsed,
            request=request,
        )
        self.body = body
        self.cached = cached
        self.parse_json = parse_json
        self._text: Optional[str] = None
        self._json: Any = None
        self._json_loaded = False
        self._response: Any = None
        self._response_loaded = False

    @property
    def content(self) -> bytes:
        return self.body

    def text(self) -> str:
        """Return the body decoded with the declared charset (UTF-8 by default)."""
        if self._text is None:
            self._text = self.body.decode(charset_of(self.content_type), errors="replace")
        return self._text

    def json(self) -> Any:
        """Return the body parsed as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        if not self._json_loaded:
            self._json = json.loads(self.text())
            self._json_loaded = True
        return self._json

    @property
    def response(self) -> Any:
        """Body decoded according to its content type.

        Text-like content types yield text, or parsed JSON when
        ``parse_json`` is on and the text parses; anything else yields the
        raw bytes.
        """
        if not self._response_loaded:
            if is_text_content_type(self.content_type):
                value: Any = self.text()
                if self.parse_json:
                    try:
                        value = self.json()
                    except ValueError:
                        pass
            else:
                value = self.body
            self._response = value
            self._response_loaded = True
        return self._response


class StreamingResponseEnvelope(_EnvelopeHead):
    """Response whose body is consumed incrementally.

    Use as an async context manager, or call :meth:`aclose`, so the
    transport process is reaped even when the body is not read to the end.
    """

    def __init__(
        self,
        *,
        url: str,
        status: int,
        headers: Union[httpx.Headers, Sequence[Tuple[str, str]]],
        body: BodyStream,
        redirects: Optional[Redirects] = None,
        elapsed: float = 0.0,
        request: Optional[Any] = None,
    ) -> None:
        super().__init__(
            url=url,
            status=status,
            headers=headers,
            redirects=redirects,
            elapsed=elapsed,
            request=request,
        )
        self.stream = body
        self.cached = False
        self._content: Optional[bytes] = None

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Yield body chunks as the transport produces them."""
        async for chunk in self.stream:
            yield chunk

    async def aread(self) -> bytes:
        """Read the remaining body into memory and return it."""
        if self._content is None:
            chunks = bytearray()
            async for chunk in self.stream:
                chunks += chunk
            self._content = bytes(chunks)
        return self._content

    async def aclose(self) -> None:
        await self.stream.aclose()

    async def __aenter__(self) -> "StreamingResponseEnvelope":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


__all__ = [
    "Redirects",
    "ResponseEnvelope",
    "StreamingResponseEnvelope",
    "charset_of",
    "is_text_content_type",
]
