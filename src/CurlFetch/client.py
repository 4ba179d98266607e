# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.client",
#   "purpose": "Admission control, cache lookup and write, invocation, and envelope construction per fetch",
#   "sections": [
#     {"id": "admissiongate", "name": "AdmissionGate", "anchor": "class-admissiongate", "kind": "class"},
#     {"id": "admissionticket", "name": "AdmissionTicket", "anchor": "class-admissionticket", "kind": "class"},
#     {"id": "curlclient", "name": "CurlClient", "anchor": "class-curlclient", "kind": "class"},
#     {"id": "lifecycle", "name": "Cache Lifecycle", "anchor": "LIF", "kind": "api"},
#     {"id": "verbs", "name": "Per-verb Helpers", "anchor": "VRB", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Fetch orchestration.

:class:`CurlClient` runs every fetch through the same states::

    START -> admission check -> (cache lookup)? -> DONE
                             -> reserve -> invoke -> parse -> (cache write)? -> DONE

Admission is checked before anything else against one in-flight count
shared by every client in the process (:data:`ADMISSION`); calls beyond
the configured ceiling are refused with
:class:`~CurlFetch.errors.ConcurrencyLimitError`. A call answered from
cache never takes a slot. A call that invokes the transport reserves one,
re-checking the ceiling and incrementing without an intervening ``await``,
and holds it until the output is parsed (or, for streams, until the body
is closed).

The cache is strictly best effort. Store failures and unusable cached
entries are logged and treated as misses; failed writes are logged and
swallowed. Only the caller's own hooks and the transport can fail a fetch.

Example:
    >>> async def main():  # doctest: +SKIP
    ...     async with CurlClient(cache_mode="local") as client:
    ...         envelope = await client.get("https://example.org", cache=True)
    ...         return envelope.status, envelope.cached
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from typing import Any, Callable, List, Optional, Tuple, Union

from CurlFetch.cache.base import CacheStore
from CurlFetch.cache.keys import cache_key_for
from CurlFetch.cache.local import LocalCacheStore
from CurlFetch.cache.redis_store import RedisCacheStore
from CurlFetch.errors import (
    AbortedError,
    BodySizeExceededError,
    CacheInitializationError,
    ConcurrencyLimitError,
    CurlFetchError,
)
from CurlFetch.frames import ResponseFrame, parse_frames, parse_stream_head, resolve_redirect_chain
from CurlFetch.logging_config import generate_correlation_id, mask_url_credentials
from CurlFetch.models import CachePolicy, RequestDescriptor
from CurlFetch.network.body import encode_body
from CurlFetch.network.capabilities import TransportCapabilities, probe_capabilities
from CurlFetch.network.command import build_command
from CurlFetch.network.dns import resolve_pinned_address
from CurlFetch.network.redirect import format_audit_trail
from CurlFetch.network.transport import SubprocessInvoker, TransportInvoker
from CurlFetch.response import Redirects, ResponseEnvelope, StreamingResponseEnvelope
from CurlFetch.settings import CacheMode, ClientSettings, get_settings

logger = logging.getLogger(__name__)

RequestHook = Callable[[RequestDescriptor], Any]
ResponseHook = Callable[[Any], Any]

#: Cached values hold raw transport output as one byte per code point
CACHE_TEXT_ENCODING = "latin-1"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class AdmissionGate:
    """In-flight call count shared by every client; the ceiling is per call."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def has_room(self, limit: int) -> bool:
        return self._in_flight < limit

    def try_acquire(self, limit: int) -> bool:
        """Take a slot if fewer than ``limit`` are held."""
        with self._lock:
            if self._in_flight >= limit:
                return False
            self._in_flight += 1
            return True

    def release(self) -> None:
        with self._lock:
            self._in_flight -= 1

    def reset(self) -> None:
        with self._lock:
            self._in_flight = 0


#: Process-wide admission state
ADMISSION = AdmissionGate()


class AdmissionTicket:
    """One reserved slot under the in-flight ceiling."""

    def __init__(self, gate: AdmissionGate) -> None:
        self._gate = gate
        self._held = True

    @property
    def held(self) -> bool:
        return self._held

    def release(self) -> None:
        """Return the slot; later calls are no-ops."""
        if self._held:
            self._held = False
            self._gate.release()


class CurlClient:
    """Fetch-like asynchronous HTTP client backed by a transport process.

    Args:
        settings: Client configuration; loaded from the environment when omitted.
        invoker: Transport invoker; a :class:`SubprocessInvoker` by default.
        cache_store: Cache store; created by :meth:`initialize_cache` from
            ``settings.cache_mode`` when omitted.
        capabilities: Transport capabilities; probed on first use when omitted.
        transform_request: Hook applied to every request before it is keyed
            and built. May return a new descriptor or ``None`` to keep it.
        transform_response: Hook applied to every envelope before it is returned.
        **overrides: Settings fields overriding ``settings`` or the environment.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        invoker: Optional[TransportInvoker] = None,
        cache_store: Optional[CacheStore] = None,
        capabilities: Optional[TransportCapabilities] = None,
        transform_request: Optional[RequestHook] = None,
        transform_response: Optional[ResponseHook] = None,
        **overrides: Any,
    ) -> None:
        if overrides:
            base = settings.model_dump() if settings is not None else {}
            settings = ClientSettings(**{**base, **overrides})
        self.settings = settings or get_settings()
        self.invoker: TransportInvoker = invoker or SubprocessInvoker()
        self.cache_store = cache_store
        self.transform_request = transform_request
        self.transform_response = transform_response
        self._capabilities = capabilities

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def in_flight(self) -> int:
        """Number of calls in this process currently holding an admission ticket."""
        return ADMISSION.in_flight

    async def capabilities(self) -> TransportCapabilities:
        """Return the transport capabilities, probing the binary once."""
        if self._capabilities is None:
            self._capabilities = await asyncio.to_thread(probe_capabilities, self.settings.binary)
        return self._capabilities

    # ------------------------------------------------------------------
    # Cache lifecycle
    # ------------------------------------------------------------------

    async def initialize_cache(self) -> Optional[CacheStore]:
        """Create (from ``settings.cache_mode``) and connect the cache store.

        Raises:
            CacheInitializationError: If the store cannot be created or reached.
        """
        store = self.cache_store
        if store is None:
            mode = self.settings.cache_mode
            if mode is CacheMode.NONE:
                return None
            if mode is CacheMode.LOCAL:
                store = LocalCacheStore(
                    default_ttl=self.settings.cache_default_ttl,
                    max_items=self.settings.cache_max_items,
                )
            else:
                store = RedisCacheStore(
                    dsn=self.settings.redis_url,
                    default_ttl=self.settings.cache_default_ttl,
                )
        try:
            await store.connect()
        except Exception as exc:
            raise CacheInitializationError(f"Failed to initialize cache store: {exc}") from exc
        self.cache_store = store
        logger.debug(
            "Cache store initialised",
            extra={"store": type(store).__name__, "default_ttl": store.default_ttl},
        )
        return store

    async def disconnect_cache(self) -> None:
        """Close and detach the cache store."""
        store, self.cache_store = self.cache_store, None
        if store is not None:
            await store.close()

    async def __aenter__(self) -> "CurlClient":
        await self.initialize_cache()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect_cache()

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def build_request(
        self,
        url: str,
        *,
        transform_request: Union[RequestHook, bool, None] = None,
        **options: Any,
    ) -> RequestDescriptor:
        """Build a descriptor and apply the request hook.

        ``transform_request`` overrides the client-wide hook for this call;
        ``False`` disables it.
        """
        request = RequestDescriptor(url=url, **options)
        if transform_request is False:
            return request
        hook = transform_request if callable(transform_request) else self.transform_request
        if hook is None:
            return request
        transformed = await _maybe_await(hook(request))
        return request if transformed is None else transformed

    async def fetch(
        self,
        url: str,
        **options: Any,
    ) -> Union[ResponseEnvelope, StreamingResponseEnvelope, Any]:
        """Fetch ``url``; keyword options are :class:`RequestDescriptor` fields.

        Raises:
            RequestConstructionError: If the options do not form a valid request.
            ConcurrencyLimitError: If the in-flight ceiling is reached.
            AbortedError: If the request's cancellation token fires.
            TransportError: If the transport process fails.
            InvalidResponseError: If the transport output holds no response.
            BodySizeExceededError: If the body exceeds ``max_body_size_mb``.
        """
        request = await self.build_request(url, **options)
        return await self.send(request)

    def _refuse(self, request: RequestDescriptor, limit: int) -> None:
        logger.warning(
            "Admission refused",
            extra={"limit": limit, "url": mask_url_credentials(request.url)},
        )
        raise ConcurrencyLimitError(limit, request=request)

    def _admit(self, request: RequestDescriptor) -> AdmissionTicket:
        limit = self.settings.max_concurrent_requests
        if not ADMISSION.try_acquire(limit):
            self._refuse(request, limit)
        return AdmissionTicket(ADMISSION)

    async def send(
        self,
        request: RequestDescriptor,
    ) -> Union[ResponseEnvelope, StreamingResponseEnvelope, Any]:
        """Run an already built request through admission, cache, and transport."""
        started = time.perf_counter()
        correlation_id = generate_correlation_id()
        limit = self.settings.max_concurrent_requests
        if not ADMISSION.has_room(limit):
            self._refuse(request, limit)
        if request.cancel is not None and request.cancel.is_cancelled():
            raise AbortedError(request=request)

        policy = request.cache if isinstance(request.cache, CachePolicy) else None
        store = self.cache_store
        key: Optional[str] = None
        if policy is not None and policy.enabled and store is not None and not request.stream:
            key = await cache_key_for(request, policy)
            hit = await self._cache_lookup(store, key, request, started, correlation_id)
            if hit is not None:
                return await self._finish(hit, request)

        ticket = self._admit(request)
        if request.stream:
            streamed = await self._stream(request, started, ticket, correlation_id)
            try:
                return await self._finish(streamed, request)
            except BaseException:
                await streamed.aclose()
                raise

        try:
            raw = await self._invoke(request, correlation_id)
            envelope = self._build_envelope(raw, request, started, cached=False)
        finally:
            ticket.release()
        logger.debug(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "url": mask_url_credentials(envelope.url),
                "status": envelope.status,
                "elapsed_ms": round(envelope.elapsed * 1000, 2),
            },
        )
        if key is not None and policy is not None and store is not None:
            await self._cache_write(store, key, raw, envelope, policy, correlation_id)
        return await self._finish(envelope, request)

    # ------------------------------------------------------------------
    # Per-verb helpers
    # ------------------------------------------------------------------

    async def get(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, method="GET", **options)

    async def post(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, method="POST", **options)

    async def put(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, method="PUT", **options)

    async def patch(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, method="PATCH", **options)

    async def delete(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, method="DELETE", **options)

    async def head(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, method="HEAD", **options)

    async def options(self, url: str, **options: Any) -> Any:
        return await self.fetch(url, method="OPTIONS", **options)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _prepare_argv(
        self,
        request: RequestDescriptor,
    ) -> Tuple[List[str], Optional[bytes]]:
        encoded = await encode_body(request.body) if request.body is not None else None
        capabilities = await self.capabilities()
        resolved_ip = await resolve_pinned_address(
            request,
            capabilities,
            default_ttl=self.settings.dns_cache_ttl,
        )
        argv = build_command(
            request,
            encoded,
            capabilities,
            settings=self.settings,
            resolved_ip=resolved_ip,
        )
        return argv, encoded.content if encoded is not None else None

    async def _invoke(self, request: RequestDescriptor, correlation_id: str) -> bytes:
        argv, payload = await self._prepare_argv(request)
        logger.debug(
            "Invoking transport",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "url": mask_url_credentials(request.url),
                "arg_count": len(argv),
                "payload_bytes": len(payload) if payload is not None else 0,
            },
        )
        return await self.invoker.invoke(
            argv, input=payload, cancel=request.cancel, request=request
        )

    async def _stream(
        self,
        request: RequestDescriptor,
        started: float,
        ticket: AdmissionTicket,
        correlation_id: str,
    ) -> StreamingResponseEnvelope:
        try:
            argv, payload = await self._prepare_argv(request)
            logger.debug(
                "Opening transport stream",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "url": mask_url_credentials(request.url),
                },
            )
            source = await self.invoker.open_stream(
                argv, input=payload, cancel=request.cancel, request=request
            )
            try:
                head = await parse_stream_head(
                    source,
                    request.url,
                    limit=self.settings.max_body_size_bytes,
                    request=request,
                    on_close=ticket.release,
                )
            except BaseException:
                await source.aclose()
                raise
        except BaseException:
            ticket.release()
            raise
        return StreamingResponseEnvelope(
            url=head.url,
            status=head.status,
            headers=head.headers,
            body=head.body,
            redirects=list(head.redirects),
            elapsed=time.perf_counter() - started,
            request=request,
        )

    def _build_envelope(
        self,
        raw: bytes,
        request: RequestDescriptor,
        started: float,
        *,
        cached: bool,
    ) -> ResponseEnvelope:
        frames = parse_frames(raw, request=request)
        final = frames[-1]
        limit = self.settings.max_body_size_bytes
        if limit is not None and len(final.body) > limit:
            raise BodySizeExceededError(len(final.body), limit, request=request)

        final_url, hops = resolve_redirect_chain(request.url, frames)
        if hops:
            logger.debug("Redirects followed", extra={"trail": format_audit_trail(hops)})

        parse_json = (
            request.parse_json if request.parse_json is not None else self.settings.parse_json
        )
        as_urls = (
            request.redirects_as_urls
            if request.redirects_as_urls is not None
            else self.settings.redirects_as_urls
        )
        redirects: Redirects
        if as_urls:
            redirects = [hop.target for hop in hops]
        else:
            hop_frames: List[ResponseFrame] = [frame for frame in frames[:-1] if frame.location]
            redirects = [
                ResponseEnvelope(
                    url=hop.source,
                    status=frame.status,
                    headers=frame.headers,
                    body=frame.body,
                    cached=cached,
                    request=request,
                    parse_json=parse_json,
                )
                for hop, frame in zip(hops, hop_frames)
            ]

        return ResponseEnvelope(
            url=final_url,
            status=final.status,
            headers=final.headers,
            body=final.body,
            cached=cached,
            redirects=redirects,
            elapsed=time.perf_counter() - started,
            request=request,
            parse_json=parse_json,
        )

    async def _cache_lookup(
        self,
        store: CacheStore,
        key: str,
        request: RequestDescriptor,
        started: float,
        correlation_id: str,
    ) -> Optional[ResponseEnvelope]:
        try:
            value = await store.get(key)
        except Exception as exc:
            logger.warning(
                "Cache lookup failed; treating as miss",
                extra={"correlation_id": correlation_id, "key": key, "error": str(exc)},
            )
            return None
        if value is None:
            logger.debug("Cache miss", extra={"correlation_id": correlation_id, "key": key})
            return None
        try:
            envelope = self._build_envelope(
                value.encode(CACHE_TEXT_ENCODING),
                request,
                started,
                cached=True,
            )
        except (CurlFetchError, UnicodeError) as exc:
            logger.warning(
                "Discarding unusable cache entry",
                extra={"correlation_id": correlation_id, "key": key, "error": str(exc)},
            )
            return None
        logger.debug(
            "Cache hit",
            extra={"correlation_id": correlation_id, "key": key, "status": envelope.status},
        )
        return envelope

    async def _cache_write(
        self,
        store: CacheStore,
        key: str,
        raw: bytes,
        envelope: ResponseEnvelope,
        policy: CachePolicy,
        correlation_id: str,
    ) -> None:
        if policy.validate is not None:
            accepted = await _maybe_await(policy.validate(envelope))
            if not accepted:
                logger.debug(
                    "Cache write vetoed by validator",
                    extra={"correlation_id": correlation_id, "key": key},
                )
                return
        try:
            written = await store.set(
                key,
                raw.decode(CACHE_TEXT_ENCODING),
                ttl=policy.ttl,
                only_if_absent=True,
            )
        except Exception as exc:
            logger.warning(
                "Cache write failed",
                extra={"correlation_id": correlation_id, "key": key, "error": str(exc)},
            )
            return
        logger.debug(
            "Cache write",
            extra={"correlation_id": correlation_id, "key": key, "written": written},
        )

    async def _finish(self, envelope: Any, request: RequestDescriptor) -> Any:
        hook = request.transform_response or self.transform_response
        if hook is None:
            return envelope
        return await _maybe_await(hook(envelope))


__all__ = ["ADMISSION", "AdmissionGate", "AdmissionTicket", "CurlClient"]
