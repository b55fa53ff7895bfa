"""Namespaced response cache."""

import asyncio
import json
import logging
from typing import Any

from redis.exceptions import RedisError

from .models import CacheHit, CacheLookup, CacheMiss, CacheStats, CacheTTL
from .store import CacheStore, InMemoryCacheStore

logger = logging.getLogger(__name__)

_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def serialize(value: Any) -> str:
    """Canonical JSON text for a cache value."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class ResponseCache:
    """Exact-match memoization with per-entry TTL.

    Values go through canonical JSON on the way in and are decoded fresh on
    the way out, so two reads of one entry never share mutable state. Store
    failures are logged and behave like a miss (reads) or a dropped write.
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        default_ttl: float = CacheTTL.SHORT,
        store_timeout: float = 0.5,
    ) -> None:
        """Initialize response cache.

        Args:
            store: Backing store; defaults to an in-memory LRU store
            default_ttl: TTL used when ``set`` is called without one
            store_timeout: Seconds to wait for the store
        """
        self.store = store or InMemoryCacheStore()
        self.default_ttl = default_ttl
        self.store_timeout = store_timeout
        self._stats = CacheStats()

    async def lookup(self, namespace: str, key: str) -> CacheLookup:
        """Look up an entry.

        Args:
            namespace: Cache namespace
            key: Exact key

        Returns:
            CacheHit with the decoded value, or CacheMiss
        """
        try:
            raw = await asyncio.wait_for(self.store.get(namespace, key), timeout=self.store_timeout)
        except _STORE_ERRORS as e:
            self._stats.errors += 1
            self._stats.misses += 1
            logger.warning(f"Cache read failed for {namespace}:{key}: {e!r}")
            return CacheMiss(reason="store_error")

        if raw is None:
            self._stats.misses += 1
            return CacheMiss()

        self._stats.hits += 1
        return CacheHit(value=json.loads(raw))

    async def get(self, namespace: str, key: str) -> Any | None:
        """Return the cached value or None."""
        result = await self.lookup(namespace, key)
        return result.value if isinstance(result, CacheHit) else None

    async def set(self, namespace: str, key: str, value: Any, ttl: float | None = None) -> bool:
        """Store a value, replacing any previous entry.

        Args:
            namespace: Cache namespace
            key: Exact key
            value: JSON-serializable value
            ttl: Seconds to live; defaults to ``default_ttl``

        Returns:
            True if the write reached the store
        """
        payload = serialize(value)
        try:
            await asyncio.wait_for(
                self.store.set(namespace, key, payload, ttl if ttl is not None else self.default_ttl),
                timeout=self.store_timeout,
            )
        except _STORE_ERRORS as e:
            self._stats.errors += 1
            logger.warning(f"Cache write dropped for {namespace}:{key}: {e!r}")
            return False
        return True

    async def delete(self, namespace: str, key: str) -> bool:
        try:
            return await asyncio.wait_for(self.store.delete(namespace, key), timeout=self.store_timeout)
        except _STORE_ERRORS as e:
            self._stats.errors += 1
            logger.warning(f"Cache delete failed for {namespace}:{key}: {e!r}")
            return False

    async def clear_namespace(self, namespace: str) -> int:
        """Invalidate every entry in a namespace.

        Returns:
            Number of entries removed, 0 on store failure
        """
        try:
            removed = await asyncio.wait_for(self.store.clear_namespace(namespace), timeout=self.store_timeout)
        except _STORE_ERRORS as e:
            self._stats.errors += 1
            logger.warning(f"Cache namespace clear failed for {namespace}: {e!r}")
            return 0
        if removed:
            logger.debug(f"Cleared {removed} entries from namespace {namespace}")
        return removed

    async def stats(self) -> CacheStats:
        """Snapshot of hit/miss counters and current size."""
        try:
            entries = await asyncio.wait_for(self.store.size(), timeout=self.store_timeout)
        except _STORE_ERRORS:
            entries = -1
        return CacheStats(
            hits=self._stats.hits,
            misses=self._stats.misses,
            errors=self._stats.errors,
            evictions=getattr(self.store, "evictions", 0),
            entries=entries,
        )
