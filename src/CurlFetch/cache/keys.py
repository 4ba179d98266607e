"""Cache key derivation.

Keys are ``curlfetch:`` followed by the SHA-256 hex digest of the chosen
request fields. Each field is serialised on its own and the pieces are
joined with ``|``:

- ``None`` becomes the empty string
- header pairs become a JSON array alternating name and value
- mappings and sequences become JSON with sorted keys
- :class:`~CurlFetch.network.body.FormData` uses its boundary-free description
- bytes become hex, everything else ``str()``

The same request always maps to the same key, in any process. Header
order is significant: ``[("a", "1"), ("b", "2")]`` and the reverse are
different requests as far as the cache is concerned.
"""

from __future__ import annotations

import hashlib
import inspect
import json
from typing import TYPE_CHECKING, Any, Iterable, Optional

from CurlFetch.network.body import FormData
from CurlFetch.network.policy import CACHE_KEY_NAMESPACE, DEFAULT_CACHE_KEY_FIELDS

if TYPE_CHECKING:
    from CurlFetch.models import CachePolicy, RequestDescriptor


def _serialize_field(name: str, value: Any) -> str:
    if value is None:
        return ""
    if name == "headers":
        flat: list = []
        for key, header_value in value:
            flat.extend((key, header_value))
        return json.dumps(flat, separators=(",", ":"))
    if isinstance(value, str):
        return value
    if isinstance(value, FormData):
        return json.dumps(value.cache_repr(), separators=(",", ":"))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return str(value)


def derive_cache_key(
    request: "RequestDescriptor",
    fields: Optional[Iterable[str]] = None,
) -> str:
    """Return the namespaced digest for ``request`` over ``fields``.

    Args:
        request: Request descriptor.
        fields: Attribute names to hash; url, headers, body, proxy, and
            method when omitted.
    """
    names = tuple(fields) if fields is not None else DEFAULT_CACHE_KEY_FIELDS
    material = "|".join(_serialize_field(name, getattr(request, name, None)) for name in names)
    return CACHE_KEY_NAMESPACE + hashlib.sha256(material.encode("utf-8")).hexdigest()


async def cache_key_for(request: "RequestDescriptor", policy: "CachePolicy") -> str:
    """Return the cache key for ``request`` under ``policy``.

    A custom ``generate`` callable (sync or async) replaces derivation.
    """
    if policy.generate is not None:
        key = policy.generate(request)
        if inspect.isawaitable(key):
            key = await key
        return str(key)
    return derive_cache_key(request, policy.keys)


__all__ = ["cache_key_for", "derive_cache_key"]
