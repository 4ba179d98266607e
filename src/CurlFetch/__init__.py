"""CurlFetch: a fetch-like asynchronous HTTP client backed by the curl executable.

Example:
    >>> import asyncio
    >>> from CurlFetch import CurlClient
    >>> async def main():  # doctest: +SKIP
    ...     client = CurlClient()
    ...     envelope = await client.get("https://example.org")
    ...     return envelope.status
"""

__version__ = "0.1.0"

from CurlFetch.cancellation import CancellationToken
from CurlFetch.client import CurlClient
from CurlFetch.errors import (
    AbortedError,
    BodySizeExceededError,
    CacheInitializationError,
    CacheStoreError,
    ConcurrencyLimitError,
    CurlFetchError,
    InvalidResponseError,
    ProxyFormatError,
    RequestConstructionError,
    TransportError,
)
from CurlFetch.models import CachePolicy, DNSPolicy, HTTPPolicy, RequestDescriptor, TLSPolicy
from CurlFetch.network.body import FormData, FormFile
from CurlFetch.response import ResponseEnvelope, StreamingResponseEnvelope
from CurlFetch.settings import ClientSettings, HTTPVersion, TLSVersion, get_settings

__all__ = [
    "AbortedError",
    "BodySizeExceededError",
    "CacheInitializationError",
    "CachePolicy",
    "CacheStoreError",
    "CancellationToken",
    "ClientSettings",
    "ConcurrencyLimitError",
    "CurlClient",
    "CurlFetchError",
    "DNSPolicy",
    "FormData",
    "FormFile",
    "HTTPPolicy",
    "HTTPVersion",
    "InvalidResponseError",
    "ProxyFormatError",
    "RequestConstructionError",
    "RequestDescriptor",
    "ResponseEnvelope",
    "StreamingResponseEnvelope",
    "TLSPolicy",
    "TLSVersion",
    "TransportError",
    "__version__",
    "get_settings",
]
