# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.models",
#   "purpose": "Request descriptor and the per-request policy value objects",
#   "sections": [
#     {"id": "policies", "name": "Request Policies", "anchor": "POL", "kind": "api"},
#     {"id": "requestdescriptor", "name": "RequestDescriptor", "anchor": "class-requestdescriptor", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Request descriptor and policy objects.

A :class:`RequestDescriptor` is the fully validated, immutable-by-convention
description of one fetch. Everything downstream (cache-key derivation,
command building, logging) reads from it; nothing downstream has to
re-validate caller input. Construction problems surface synchronously from
``__post_init__`` as :class:`~CurlFetch.errors.RequestConstructionError`
(or its :class:`~CurlFetch.errors.ProxyFormatError` subclass).

Policies group the knobs that travel together:

- :class:`TLSPolicy`: version set, cipher lists, certificate checking
- :class:`HTTPPolicy`: protocol version and keep-alive tuning
- :class:`DNSPolicy`: alternate servers, pin cache, explicit resolve
- :class:`CachePolicy`: per-call cache participation and key/validator hooks

Fields left as ``None`` defer to :class:`~CurlFetch.settings.ClientSettings`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple, Union

import httpx

from CurlFetch.cancellation import CancellationToken
from CurlFetch.errors import RequestConstructionError
from CurlFetch.network.headers import HeaderPairs, HeadersInput, normalize_headers
from CurlFetch.network.policy import DEFAULT_CACHE_KEY_FIELDS
from CurlFetch.network.proxy import format_proxy_string
from CurlFetch.settings import HTTPVersion, TLSVersion

CacheKeyGenerator = Callable[["RequestDescriptor"], Union[str, Awaitable[str]]]
CacheValidator = Callable[[Any], Union[bool, Awaitable[bool]]]

# ============================================================================
# Request policies
# ============================================================================


@dataclass(frozen=True)
class TLSPolicy:
    """TLS negotiation constraints for one request.

    Attributes:
        versions: Allowed versions; ``None`` uses the client default set.
        ciphers: Cipher list for TLS 1.2 and below (string or sequence).
        tls13_ciphers: Cipher suites for TLS 1.3 (string or sequence).
        insecure: Skip certificate verification.
    """

    versions: Optional[Tuple[TLSVersion, ...]] = None
    ciphers: Optional[Union[str, Sequence[str]]] = None
    tls13_ciphers: Optional[Union[str, Sequence[str]]] = None
    insecure: bool = False

    def __post_init__(self) -> None:
        if self.versions is not None:
            try:
                versions = tuple(TLSVersion(int(v)) for v in self.versions)
            except (TypeError, ValueError) as exc:
                raise RequestConstructionError(f"Unknown TLS version in {self.versions!r}") from exc
            if not versions:
                raise RequestConstructionError("TLS version set must not be empty")
            object.__setattr__(self, "versions", versions)


@dataclass(frozen=True)
class HTTPPolicy:
    """HTTP protocol preferences.

    ``keep_alive`` is ``False`` to disable keep-alive probes, a number of
    seconds to tune their interval, or ``None`` for the transport default.
    Keep-alive flags only apply to HTTP/1.1 transfers.
    """

    version: Optional[HTTPVersion] = None
    keep_alive: Union[bool, float, None] = None
    keep_alive_probes: Optional[int] = None

    def __post_init__(self) -> None:
        if self.version is not None and not isinstance(self.version, HTTPVersion):
            try:
                object.__setattr__(self, "version", HTTPVersion(str(self.version)))
            except ValueError as exc:
                raise RequestConstructionError(f"Unknown HTTP version {self.version!r}") from exc


@dataclass(frozen=True)
class DNSPolicy:
    """Name resolution preferences.

    Attributes:
        servers: Alternate DNS servers handed to the transport.
        cache: ``True`` to cache pins for the client default TTL, a number of
            seconds for a custom TTL, ``False`` to resolve afresh every time.
        resolve: Explicit IPv4 address to pin the request host to.
    """

    servers: Tuple[str, ...] = ()
    cache: Union[bool, float] = False
    resolve: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "servers", tuple(self.servers))


@dataclass(frozen=True)
class CachePolicy:
    """Per-call cache participation.

    Attributes:
        enabled: Whether this call reads and writes the cache.
        ttl: Entry lifetime in seconds; ``None`` uses the store default.
        keys: Request fields hashed into the derived key.
        generate: Custom key function (sync or async) replacing derivation.
        validate: Predicate (sync or async) over the parsed response that
            may veto the write.
    """

    enabled: bool = True
    ttl: Optional[float] = None
    keys: Tuple[str, ...] = DEFAULT_CACHE_KEY_FIELDS
    generate: Optional[CacheKeyGenerator] = None
    validate: Optional[CacheValidator] = None

    def __post_init__(self) -> None:
        keys = tuple(self.keys)
        unknown = [name for name in keys if name not in RequestDescriptor.__dataclass_fields__]
        if unknown:
            raise RequestConstructionError(f"Unknown cache key fields: {', '.join(unknown)}")
        object.__setattr__(self, "keys", keys)
        if self.ttl is not None and self.ttl <= 0:
            raise RequestConstructionError("Cache TTL must be positive")


# ============================================================================
# Request descriptor
# ============================================================================


@dataclass
class RequestDescriptor:
    """Validated description of a single fetch.

    Attributes:
        url: Absolute target URL.
        method: HTTP method, upper-cased on construction.
        headers: Ordered header pairs; any :data:`HeadersInput` shape is accepted.
        body: Any shape understood by :func:`~CurlFetch.network.body.encode_body`.
        proxy: Proxy string in any supported notation; normalised on construction.
        follow: ``True``/``False`` or the maximum number of redirect hops;
            ``None`` uses the client default.
        max_time: Overall timeout in seconds; ``None`` uses the client default.
        connect_timeout: Connect timeout in seconds; ``None`` uses the client default.
        compress: Ask for a compressed response; ``None`` uses the client default.
        cancel: Token that aborts the request when cancelled.
        cache: Cache participation; ``True``/``False`` are shorthands.
        stream: Return a streaming envelope instead of a buffered one.
        sort_headers: Emit headers in canonical order; ``None`` uses the client default.
        parse_json: Decode JSON-looking text responses; ``None`` uses the client default.
        redirects_as_urls: Report hops as URLs or nested envelopes.
        transform_response: Hook (sync or async) applied to the finished envelope.
    """

    url: str
    method: str = "GET"
    headers: HeadersInput = field(default_factory=list)
    body: Any = None
    proxy: Optional[str] = None
    tls: TLSPolicy = field(default_factory=TLSPolicy)
    http: HTTPPolicy = field(default_factory=HTTPPolicy)
    dns: DNSPolicy = field(default_factory=DNSPolicy)
    follow: Union[bool, int, None] = None
    max_time: Optional[float] = None
    connect_timeout: Optional[float] = None
    compress: Optional[bool] = None
    cancel: Optional[CancellationToken] = None
    cache: Union[CachePolicy, bool, None] = None
    stream: bool = False
    sort_headers: Optional[bool] = None
    parse_json: Optional[bool] = None
    redirects_as_urls: Optional[bool] = None
    transform_response: Optional[Callable[[Any], Any]] = None

    def __post_init__(self) -> None:
        self.method = str(self.method).strip().upper()
        if not self.method:
            raise RequestConstructionError("HTTP method must not be empty")

        try:
            parsed = httpx.URL(str(self.url))
        except httpx.InvalidURL as exc:
            raise RequestConstructionError(f"Invalid URL: {self.url!r}") from exc
        if not parsed.scheme or not parsed.host:
            raise RequestConstructionError(f"URL must be absolute: {self.url!r}")
        self.url = str(self.url)

        self.headers = normalize_headers(self.headers)
        if self.proxy:
            self.proxy = format_proxy_string(self.proxy)
        else:
            self.proxy = None

        if self.follow is not None and not isinstance(self.follow, bool):
            if not isinstance(self.follow, int) or self.follow < 0:
                raise RequestConstructionError(
                    f"follow must be a bool or a hop count, got {self.follow!r}"
                )

        for name in ("max_time", "connect_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise RequestConstructionError(f"{name} must be positive")

        if self.cache is True:
            self.cache = CachePolicy()
        elif self.cache is False:
            self.cache = CachePolicy(enabled=False)

    @property
    def host(self) -> str:
        return httpx.URL(self.url).host

    @property
    def header_pairs(self) -> HeaderPairs:
        return list(self.headers)  # type: ignore[arg-type]

    def get_header(self, name: str) -> Optional[str]:
        """Return the first value of header ``name`` (case-insensitive)."""
        lowered = name.lower()
        for key, value in self.headers:  # type: ignore[misc]
            if key.lower() == lowered:
                return value
        return None

    def with_changes(self, **changes: Any) -> "RequestDescriptor":
        """Return a re-validated copy with ``changes`` applied."""
        return replace(self, **changes)


__all__ = [
    "CacheKeyGenerator",
    "CachePolicy",
    "CacheValidator",
    "DNSPolicy",
    "HTTPPolicy",
    "RequestDescriptor",
    "TLSPolicy",
]
