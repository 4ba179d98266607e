"""Cache stores and key derivation for transport output."""

from CurlFetch.cache.base import CacheStore
from CurlFetch.cache.keys import cache_key_for, derive_cache_key
from CurlFetch.cache.local import ExpiringMap, LocalCacheStore
from CurlFetch.cache.redis_store import RedisCacheStore

__all__ = [
    "CacheStore",
    "ExpiringMap",
    "LocalCacheStore",
    "RedisCacheStore",
    "cache_key_for",
    "derive_cache_key",
]
