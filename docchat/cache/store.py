"""Cache storage backends."""

import logging
import re
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from urllib.parse import quote

from redis.asyncio import Redis

from .models import CacheEntry

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_glob(text: str) -> str:
    """Escape Redis ``MATCH`` pattern metacharacters."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class CacheStore(ABC):
    """Abstract namespaced key/value store with per-entry TTL.

    Values are opaque strings; serialization is the caller's concern.
    """

    @abstractmethod
    async def get(self, namespace: str, key: str) -> str | None:
        """Return the live value for ``key`` or None. Must not extend TTL."""
        pass

    @abstractmethod
    async def set(self, namespace: str, key: str, value: str, ttl: float) -> None:
        """Store ``value``, replacing any previous entry."""
        pass

    @abstractmethod
    async def delete(self, namespace: str, key: str) -> bool:
        """Remove one entry. Returns whether it existed."""
        pass

    @abstractmethod
    async def clear_namespace(self, namespace: str) -> int:
        """Remove every entry in ``namespace``. Returns the count removed."""
        pass

    @abstractmethod
    async def size(self) -> int:
        """Number of stored entries, live or not yet purged."""
        pass


class InMemoryCacheStore(CacheStore):
    """Process-local LRU store with a fixed capacity.

    Reads refresh recency for LRU purposes but never touch ``created_at``,
    so TTL is always measured from the last write.
    """

    def __init__(self, capacity: int = 1000, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize in-memory store.

        Args:
            capacity: Maximum number of entries before LRU eviction
            clock: Time source in seconds
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], CacheEntry] = OrderedDict()
        self.evictions = 0

    async def get(self, namespace: str, key: str) -> str | None:
        slot = (namespace, key)
        entry = self._entries.get(slot)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._entries[slot]
            return None

        self._entries.move_to_end(slot)
        return entry.value

    async def set(self, namespace: str, key: str, value: str, ttl: float) -> None:
        slot = (namespace, key)
        self._entries[slot] = CacheEntry(key=key, value=value, created_at=self._clock(), ttl=ttl)
        self._entries.move_to_end(slot)

        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug(f"Evicted least recently used cache entry {evicted[0]}:{evicted[1]}")

    async def delete(self, namespace: str, key: str) -> bool:
        return self._entries.pop((namespace, key), None) is not None

    async def clear_namespace(self, namespace: str) -> int:
        doomed = [slot for slot in self._entries if slot[0] == namespace]
        for slot in doomed:
            del self._entries[slot]
        return len(doomed)

    async def size(self) -> int:
        return len(self._entries)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the count removed."""
        now = self._clock()
        expired = [slot for slot, entry in self._entries.items() if entry.is_expired(now)]
        for slot in expired:
            del self._entries[slot]
        if expired:
            logger.debug(f"Cache cleanup: removed {len(expired)} expired entries")
        return len(expired)


class RedisCacheStore(CacheStore):
    """Redis-backed store.

    Expiry is enforced by Redis (``SET ... PX``). Capacity-based LRU
    eviction is delegated to the server's ``maxmemory-policy allkeys-lru``.

    Namespaces are percent-encoded inside the key, so a namespace never
    contains ``:`` or a glob character and clearing one cannot reach
    keys of another (``history:a`` vs ``history:a:b``).
    """

    def __init__(self, client: Redis, prefix: str = "docchat") -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisCacheStore":
        """Create a store from a Redis URL."""
        return cls(Redis.from_url(url), **kwargs)

    def _namespace_prefix(self, namespace: str) -> str:
        return f"{self.prefix}:{quote(namespace, safe='')}:"

    def _key(self, namespace: str, key: str) -> str:
        return self._namespace_prefix(namespace) + key

    async def get(self, namespace: str, key: str) -> str | None:
        raw = await self.client.get(self._key(namespace, key))
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    async def set(self, namespace: str, key: str, value: str, ttl: float) -> None:
        await self.client.set(self._key(namespace, key), value, px=max(int(ttl * 1000), 1))

    async def delete(self, namespace: str, key: str) -> bool:
        return bool(await self.client.delete(self._key(namespace, key)))

    async def clear_namespace(self, namespace: str) -> int:
        removed = 0
        pattern = escape_glob(self._namespace_prefix(namespace)) + "*"
        async for redis_key in self.client.scan_iter(match=pattern, count=500):
            removed += await self.client.delete(redis_key)
        return removed

    async def size(self) -> int:
        count = 0
        async for _ in self.client.scan_iter(match=f"{escape_glob(self.prefix)}:*", count=500):
            count += 1
        return count
