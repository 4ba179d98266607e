"""Cache store protocol shared by the local and Redis-backed stores.

The orchestrator talks to exactly this surface and never branches on the
concrete store. Values are the untouched textual output of one transport
invocation; keys are namespaced digests produced by
:mod:`CurlFetch.cache.keys`.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class CacheStore(Protocol):
    """Minimal asynchronous key-value store with TTLs and conditional writes."""

    default_ttl: float

    async def connect(self) -> None:
        """Open the underlying connection; a no-op for in-process stores."""
        ...

    async def get(self, key: str) -> Optional[str]:
        """Return the live value for ``key`` or ``None``."""
        ...

    async def set(
        self,
        key: str,
        value: str,
        *,
        ttl: Optional[float] = None,
        only_if_absent: bool = False,
    ) -> bool:
        """Store ``value`` for ``ttl`` seconds (store default when ``None``).

        Returns:
            True when the value was written; False when ``only_if_absent``
            was requested and a live value already existed.
        """
        ...

    async def close(self) -> None:
        """Release the underlying connection."""
        ...


__all__ = ["CacheStore"]
