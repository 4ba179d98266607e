# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.errors",
#   "purpose": "Define the exception hierarchy raised by request construction, admission, transport, and parsing",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "construction", "name": "Construction Errors", "anchor": "CON", "kind": "api"},
#     {"id": "transport", "name": "Admission & Transport Errors", "anchor": "TRN", "kind": "api"},
#     {"id": "response", "name": "Response Errors", "anchor": "RSP", "kind": "api"},
#     {"id": "cache", "name": "Cache Errors", "anchor": "CCH", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across request construction, invocation, and parsing.

A single fetch crosses several failure domains: building the descriptor,
admission control, the external transport process, and reconstruction of
its output. This module groups those failure modes under
:class:`CurlFetchError` so callers can react to categories (for example,
"the transport failed" vs "the output was unreadable") while still reaching
the diagnostic context each subclass carries: the originating request,
the exit code, or the raw payload.

Every class exposes a stable ``code`` string so log pipelines and callers
can match on error kinds without importing the classes.
"""

from __future__ import annotations

from typing import Any, Optional

__all__ = [
    "CurlFetchError",
    "RequestConstructionError",
    "ProxyFormatError",
    "ConcurrencyLimitError",
    "TransportError",
    "AbortedError",
    "InvalidResponseError",
    "BodySizeExceededError",
    "CacheStoreError",
    "CacheInitializationError",
]


class CurlFetchError(RuntimeError):
    """Base exception for every failure raised by the fetch pipeline."""

    code = "ERR_CURLFETCH"

    def __init__(self, message: str, *, request: Optional[Any] = None) -> None:
        super().__init__(message)
        self.request = request


class RequestConstructionError(CurlFetchError, ValueError):
    """Raised when a request descriptor cannot be built from caller input."""

    code = "ERR_INVALID_REQUEST"


class ProxyFormatError(RequestConstructionError):
    """Raised when a proxy connection string does not match a known notation."""

    code = "ERR_INVALID_PROXY"

    def __init__(self, message: str, *, proxy: str) -> None:
        super().__init__(message)
        self.proxy = proxy


class ConcurrencyLimitError(CurlFetchError):
    """Raised when the in-flight invocation ceiling has been reached."""

    code = "ERR_CONCURRENT_REQUESTS_REACHED"

    def __init__(self, limit: int, *, request: Optional[Any] = None) -> None:
        super().__init__(
            f"Maximum concurrent requests reached ({limit})",
            request=request,
        )
        self.limit = limit


class TransportError(CurlFetchError):
    """Raised when the transport process exits unsuccessfully."""

    code = "ERR_CURL_FAILED"

    def __init__(
        self,
        message: str,
        *,
        exit_code: Optional[int] = None,
        request: Optional[Any] = None,
    ) -> None:
        super().__init__(message, request=request)
        self.exit_code = exit_code


class AbortedError(CurlFetchError):
    """Raised when a request is cancelled through its cancellation token."""

    code = "ERR_ABORTED"

    def __init__(
        self,
        message: str = "The operation was aborted",
        *,
        request: Optional[Any] = None,
    ) -> None:
        super().__init__(message, request=request)


class InvalidResponseError(CurlFetchError):
    """Raised when transport output contains no recognisable HTTP response."""

    code = "ERR_INVALID_RESPONSE_BODY"

    def __init__(self, raw: str, *, request: Optional[Any] = None) -> None:
        preview = raw if len(raw) <= 512 else raw[:512] + "..."
        super().__init__(f"Received unknown response ({preview!r})", request=request)
        self.raw = raw


class BodySizeExceededError(CurlFetchError):
    """Raised when a response body is larger than the configured ceiling."""

    code = "ERR_BODY_SIZE_EXCEEDED"

    def __init__(self, size: int, limit: int, *, request: Optional[Any] = None) -> None:
        super().__init__(
            f"Maximum body size exceeded ({size / (1024 * 1024):.2f} MiB > "
            f"{limit / (1024 * 1024):.2f} MiB)",
            request=request,
        )
        self.size = size
        self.limit = limit


class CacheStoreError(CurlFetchError):
    """Raised by cache stores; always recovered inside the orchestrator."""

    code = "ERR_CACHE"


class CacheInitializationError(CurlFetchError):
    """Raised when the configured cache store cannot be created or connected."""

    code = "ERR_CACHE_INITIALIZATION"
