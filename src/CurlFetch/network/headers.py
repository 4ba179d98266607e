"""Request header normalisation and canonical ordering.

Callers may pass headers as a mapping (values may be lists for repeated
headers), an iterable of pairs, or an :class:`httpx.Headers` instance.
:func:`normalize_headers` flattens every shape into ordered ``(name, value)``
pairs and rejects names that are not RFC 9110 tokens or values carrying
line breaks, since either would corrupt the transport's argument vector.
:func:`sort_headers` orders pairs the way browsers conventionally send them.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Tuple, Union

import httpx

from CurlFetch.errors import RequestConstructionError

HeaderPairs = List[Tuple[str, str]]
HeadersInput = Union[Mapping[str, Any], Iterable[Tuple[str, Any]], httpx.Headers, None]

_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

PRIORITIZED_ORDER = {
    name: index
    for index, name in enumerate(
        (
            "accept",
            "accept-charset",
            "accept-encoding",
            "accept-language",
            "access-control-request-headers",
            "access-control-request-method",
            "authorization",
            "cache-control",
            "connection",
            "content-length",
            "content-type",
            "cookie",
            "dnt",
            "expect",
            "host",
            "if-match",
            "if-modified-since",
            "if-none-match",
            "if-range",
            "if-unmodified-since",
            "keep-alive",
            "origin",
            "pragma",
            "proxy-authorization",
            "range",
            "referer",
            "sec-fetch-dest",
            "sec-fetch-mode",
            "sec-websocket-extensions",
            "sec-websocket-key",
            "sec-websocket-protocol",
            "sec-websocket-version",
            "te",
            "upgrade-insecure-requests",
            "user-agent",
        )
    )
}


def _validated(name: Any, value: Any) -> Tuple[str, str]:
    name = str(name)
    text = str(value)
    if not _TOKEN.match(name):
        raise RequestConstructionError(f"Invalid header name: {name!r}")
    if "\r" in text or "\n" in text or "\x00" in text:
        raise RequestConstructionError(f"Invalid value for header {name!r}: contains a line break")
    return name, text


def normalize_headers(headers: HeadersInput) -> HeaderPairs:
    """Flatten any supported header shape into validated, ordered pairs.

    Raises:
        RequestConstructionError: If a name is not a token or a value has a line break.
    """
    if headers is None:
        return []
    if isinstance(headers, httpx.Headers):
        items: Iterable[Tuple[Any, Any]] = headers.multi_items()
    elif isinstance(headers, Mapping):
        items = headers.items()
    else:
        items = headers

    pairs: HeaderPairs = []
    for item in items:
        try:
            name, value = item
        except (TypeError, ValueError) as exc:
            raise RequestConstructionError(f"Invalid header entry: {item!r}") from exc
        if isinstance(value, (list, tuple)):
            pairs.extend(_validated(name, each) for each in value)
        else:
            pairs.append(_validated(name, value))
    return pairs


def sort_headers(headers: HeaderPairs) -> HeaderPairs:
    """Order header pairs by the priority table, then alphabetically.

    Names are compared case-insensitively; the original spelling is kept.
    The sort is stable, so repeated headers keep their relative order.
    """
    unranked = len(PRIORITIZED_ORDER)

    def _key(pair: Tuple[str, str]) -> Tuple[int, str]:
        lowered = pair[0].lower()
        return PRIORITIZED_ORDER.get(lowered, unranked), lowered

    return sorted(headers, key=_key)


__all__ = [
    "HeaderPairs",
    "HeadersInput",
    "PRIORITIZED_ORDER",
    "normalize_headers",
    "sort_headers",
]
