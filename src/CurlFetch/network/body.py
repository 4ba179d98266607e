# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.network.body",
#   "purpose": "Encode heterogeneous request bodies into a transport payload and content-type hint",
#   "sections": [
#     {"id": "formfile", "name": "FormFile", "anchor": "class-formfile", "kind": "class"},
#     {"id": "formdata", "name": "FormData", "anchor": "class-formdata", "kind": "class"},
#     {"id": "encodedbody", "name": "EncodedBody", "anchor": "class-encodedbody", "kind": "class"},
#     {"id": "determine-content-type", "name": "determine_content_type", "anchor": "function-determine-content-type", "kind": "function"},
#     {"id": "encode-body", "name": "encode_body", "anchor": "function-encode-body", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Request body encoding.

The transport reads a request body from its stdin in one piece, so
every body shape a caller may pass has to collapse into one payload (text
or bytes) plus, where it can be inferred, a content type:

- ``str``: sniffed as JSON, URL-encoded form, or plain text
- ``dict`` / ``list`` with a JSON shape: serialised as JSON
- :class:`httpx.QueryParams`: percent-encoded form
- :class:`FormData`: multipart payload with a random boundary
- ``bytes`` / ``bytearray`` / ``memoryview`` / file objects / byte
  iterators (sync or async): drained into ``bytes``, no hint

Anything else is coerced with ``str()`` and sniffed like a string.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Iterable, List, Optional, Tuple, Union

import httpx

Payload = Union[str, bytes]


@dataclass(frozen=True)
class FormFile:
    """A binary-valued multipart field."""

    content: bytes
    filename: str = "file"
    content_type: str = "application/octet-stream"


@dataclass
class FormData:
    """Ordered multipart form fields; repeated names are allowed."""

    fields: List[Tuple[str, Union[str, FormFile]]] = field(default_factory=list)

    def append(
        self,
        name: str,
        value: Union[str, bytes, FormFile],
        filename: Optional[str] = None,
    ) -> None:
        """Add a field; ``bytes`` values become :class:`FormFile` entries."""
        if isinstance(value, (bytes, bytearray, memoryview)):
            value = FormFile(bytes(value), filename or "file")
        elif not isinstance(value, FormFile):
            value = str(value)
        self.fields.append((name, value))

    def cache_repr(self) -> list:
        """Return a JSON-serialisable, boundary-independent description."""
        out: list = []
        for name, value in self.fields:
            if isinstance(value, FormFile):
                out.append([name, value.filename, value.content_type, value.content.hex()])
            else:
                out.append([name, value])
        return out


@dataclass(frozen=True)
class EncodedBody:
    """Transport payload plus the content type inferred from the body shape."""

    payload: Payload
    content_type: Optional[str] = None

    @property
    def content(self) -> bytes:
        """Payload as the bytes written to the transport's stdin."""
        if isinstance(self.payload, str):
            return self.payload.encode("utf-8")
        return self.payload


def has_json_structure(value: Any) -> bool:
    """Return True when ``value`` is, or parses to, a JSON object or array."""
    if isinstance(value, str):
        text = value.strip()
        if not text or (text[0], text[-1]) not in {("{", "}"), ("[", "]")}:
            return False
        try:
            value = json.loads(text)
        except ValueError:
            return False
    return isinstance(value, (dict, list))


def determine_content_type(body: str) -> str:
    """Infer a content type for a textual body.

    Examples:
        >>> determine_content_type('{"a": 1}')
        'application/json'
        >>> determine_content_type("a=1&b=2")
        'application/x-www-form-urlencoded'
        >>> determine_content_type("hello")
        'text/plain'
    """
    if has_json_structure(body):
        return "application/json"
    if "=" not in body:
        return "text/plain"
    if all("=" in pair for pair in body.split("&")):
        return "application/x-www-form-urlencoded"
    return "text/plain"


def build_multipart_body(form: FormData, boundary: Optional[str] = None) -> Tuple[bytes, str]:
    """Serialise ``form`` as ``multipart/form-data``.

    Returns:
        Tuple of ``(payload, boundary)``.
    """
    boundary = boundary or "----CurlFetchFormBoundary" + secrets.token_hex(8)
    parts: List[bytes] = []
    for name, value in form.fields:
        header = f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"'
        if isinstance(value, FormFile):
            header += f'; filename="{value.filename}"\r\nContent-Type: {value.content_type}\r\n\r\n'
            chunk = value.content
        else:
            header += "\r\n\r\n"
            chunk = value.encode("utf-8")
        parts.extend((header.encode("utf-8"), chunk, b"\r\n"))
    parts.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(parts), boundary


def _json_round_trips(value: Any) -> bool:
    try:
        return json.loads(json.dumps(value)) == value
    except (TypeError, ValueError):
        return False


async def _drain_async(source: AsyncIterable[Any]) -> bytes:
    chunks = bytearray()
    async for chunk in source:
        chunks += chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
    return bytes(chunks)


def _drain_sync(source: Iterable[Any]) -> bytes:
    chunks = bytearray()
    for chunk in source:
        chunks += chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
    return bytes(chunks)


async def encode_body(body: Any) -> EncodedBody:
    """Convert a request body into a single payload and an optional content type.

    Incremental sources are drained completely before returning; streaming
    request bodies are not supported; the transport receives one payload on stdin.
    """
    if isinstance(body, str):
        return EncodedBody(body, determine_content_type(body))
    if isinstance(body, httpx.QueryParams):
        return EncodedBody(str(body), "application/x-www-form-urlencoded")
    if isinstance(body, FormData):
        payload, boundary = build_multipart_body(body)
        return EncodedBody(payload, f"multipart/form-data; boundary={boundary}")
    if isinstance(body, (bytes, bytearray, memoryview)):
        return EncodedBody(bytes(body))
    if isinstance(body, (dict, list)) and _json_round_trips(body):
        return EncodedBody(json.dumps(body, separators=(",", ":")), "application/json")
    if hasattr(body, "read"):
        data = body.read()
        if hasattr(data, "__await__"):
            data = await data
        return EncodedBody(data.encode("utf-8") if isinstance(data, str) else bytes(data))
    if hasattr(body, "__aiter__"):
        return EncodedBody(await _drain_async(body))
    if hasattr(body, "__iter__") and not isinstance(body, (dict, list, tuple, set)):
        return EncodedBody(_drain_sync(body))

    text = str(body)
    return EncodedBody(text, determine_content_type(text))


__all__ = [
    "EncodedBody",
    "FormData",
    "FormFile",
    "Payload",
    "build_multipart_body",
    "determine_content_type",
    "encode_body",
    "has_json_structure",
]
