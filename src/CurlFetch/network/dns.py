"""Host pinning for the transport's ``--resolve`` flag.

Before a command is built, the request host may be resolved to an IPv4
address so the transport connects without its own lookup. The address
comes from, in order: the request's explicit ``dns.resolve``, the
process-wide :data:`DNS_CACHE` (when the request enables caching), or a
fresh ``getaddrinfo`` lookup on the running loop. Literal addresses and
hosts the binary cannot pin are left alone.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import socket
from typing import TYPE_CHECKING, Optional

import httpx

from CurlFetch.cache.local import ExpiringMap
from CurlFetch.network.capabilities import TransportCapabilities
from CurlFetch.network.policy import DNS_CACHE_MAX_ITEMS, PROTOCOL_PORTS

if TYPE_CHECKING:
    from CurlFetch.models import RequestDescriptor

logger = logging.getLogger(__name__)

_ALPHA = re.compile(r"[A-Za-z]")

#: Process-wide cache of ``hostname -> IPv4`` pins
DNS_CACHE: ExpiringMap[str] = ExpiringMap(max_items=DNS_CACHE_MAX_ITEMS)


def is_valid_ipv4(value: str) -> bool:
    """Return True for a dotted-quad IPv4 address.

    Examples:
        >>> is_valid_ipv4("93.184.216.34")
        True
        >>> is_valid_ipv4("example.com")
        False
    """
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def contains_alphabet(host: str) -> bool:
    """Return True when ``host`` looks like a name rather than an IP literal."""
    return ":" not in host and bool(_ALPHA.search(host))


def pin_target(url: str, address: str) -> str:
    """Return the ``host:port:address`` argument for ``--resolve``."""
    parsed = httpx.URL(url)
    port = parsed.port or PROTOCOL_PORTS.get(parsed.scheme, 80)
    return f"{parsed.host}:{port}:{address}"


async def _lookup(host: str) -> Optional[str]:
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, family=socket.AF_INET, type=socket.SOCK_STREAM)
    except OSError as exc:
        logger.debug("DNS lookup failed", extra={"host": host, "error": str(exc)})
        return None
    for _family, _type, _proto, _canon, sockaddr in infos:
        return str(sockaddr[0])
    return None


async def resolve_pinned_address(
    request: "RequestDescriptor",
    capabilities: TransportCapabilities,
    *,
    default_ttl: float = 30.0,
    cache: Optional[ExpiringMap[str]] = None,
) -> Optional[str]:
    """Resolve the IPv4 address the request host should be pinned to.

    Args:
        request: Request being prepared.
        capabilities: Probed transport capabilities.
        default_ttl: Pin lifetime when ``dns.cache`` is ``True``.
        cache: Pin cache; the process-wide :data:`DNS_CACHE` by default.

    Returns:
        The IPv4 address, or ``None`` when no pin should be emitted.
    """
    host = request.host
    if not capabilities.dns_resolve or not contains_alphabet(host):
        return None

    store = DNS_CACHE if cache is None else cache
    policy = request.dns
    cache_enabled = policy.cache is not False and policy.cache is not None

    address: Optional[str] = policy.resolve
    cached = store.get(host) if cache_enabled else None
    if address is None:
        address = cached if cached is not None else await _lookup(host)

    if address is None or not is_valid_ipv4(address):
        return None

    if cache_enabled and cached is None:
        ttl = default_ttl if policy.cache is True else float(policy.cache)
        store.set(host, address, ttl)
    return address


__all__ = [
    "DNS_CACHE",
    "contains_alphabet",
    "is_valid_ipv4",
    "pin_target",
    "resolve_pinned_address",
]
