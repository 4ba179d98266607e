# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.cache.local",
#   "purpose": "Process-local expiring map and the cache store built on it",
#   "sections": [
#     {"id": "expiringmap", "name": "ExpiringMap", "anchor": "class-expiringmap", "kind": "class"},
#     {"id": "localcachestore", "name": "LocalCacheStore", "anchor": "class-localcachestore", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Process-local expiring map and cache store.

:class:`ExpiringMap` is a plain dict of ``(value, expires_at)`` entries with
lazy expiry on access, an optional entry limit, and an injectable clock so
tests can step time deterministically. It backs both the DNS pin cache and
:class:`LocalCacheStore`, the in-process implementation of
:class:`~CurlFetch.cache.base.CacheStore`.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

V = TypeVar("V")


class ExpiringMap(Generic[V]):
    """Thread-safe mapping whose entries expire after a per-entry TTL.

    Example:
        >>> now = [0.0]
        >>> cache = ExpiringMap(clock=lambda: now[0])
        >>> cache.set("a", 1, ttl=1.0)
        >>> cache.get("a")
        1
        >>> now[0] = 1.5
        >>> cache.get("a") is None
        True
    """

    def __init__(
        self,
        *,
        max_items: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_items = max_items
        self._clock = clock
        self._data: Dict[str, Tuple[V, float]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: V, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        with self._lock:
            now = self._clock()
            if self.max_items and key not in self._data and len(self._data) >= self.max_items:
                self._purge_locked(now)
                while len(self._data) >= self.max_items:
                    # dicts keep insertion order; drop the oldest entry
                    self._data.pop(next(iter(self._data)))
            self._data[key] = (value, now + ttl)

    def get(self, key: str) -> Optional[V]:
        """Return the live value for ``key``, dropping it if it has expired."""
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() > expires_at:
                del self._data[key]
                return None
            return value

    def has(self, key: str) -> bool:
        """Return True when ``key`` holds a live value."""
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        """Remove ``key``; return True when it was present."""
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns count removed."""
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._data.items() if now > expires_at]
        for key in expired:
            del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class LocalCacheStore:
    """In-process cache store; entries vanish with the process."""

    def __init__(
        self,
        *,
        default_ttl: float = 300.0,
        max_items: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._entries: ExpiringMap[str] = ExpiringMap(max_items=max_items, clock=clock)

    async def connect(self) -> None:
        return None

    async def get(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    async def set(
        self,
        key: str,
        value: str,
        *,
        ttl: Optional[float] = None,
        only_if_absent: bool = False,
    ) -> bool:
        if only_if_absent and self._entries.has(key):
            return False
        self._entries.set(key, value, self.default_ttl if ttl is None else ttl)
        return True

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(default_ttl={self.default_ttl})"


__all__ = ["ExpiringMap", "LocalCacheStore"]
