"""Backing stores for sliding-window rate limiting."""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable

from redis.asyncio import Redis

from .models import RateLimitWindow, WindowCount

logger = logging.getLogger(__name__)

# Drops expired entries, counts the rest and records the request only when
# below the limit. Runs atomically inside Redis.
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
  redis.call('ZADD', key, now, member)
  count = count + 1
  allowed = 1
end
redis.call('PEXPIRE', key, window)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local start = -1
if oldest[2] then
  start = tonumber(oldest[2])
end
return {allowed, count, start}
"""


class RateLimitStore(ABC):
    """Abstract store supporting atomic add-and-count within a window."""

    @abstractmethod
    async def increment(self, identifier: str, window_seconds: float, limit: int) -> WindowCount:
        """Record a request for ``identifier`` if it fits inside the window.

        Args:
            identifier: User ID or client address
            window_seconds: Sliding window length
            limit: Maximum admitted requests inside the window

        Returns:
            WindowCount describing the window after the operation
        """
        pass

    @abstractmethod
    async def peek(self, identifier: str, window_seconds: float) -> RateLimitWindow:
        """Return the current window without recording a request."""
        pass

    @abstractmethod
    async def reset(self, identifier: str) -> None:
        """Forget all requests recorded for ``identifier``."""
        pass


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store.

    There is no await between reading and writing a window, so each
    increment is atomic on a single event loop. Nothing is shared across
    processes. Identifiers that have been idle for longer than the longest
    window seen are swept every ``sweep_interval`` seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.time, sweep_interval: float = 60.0) -> None:
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self.sweep_interval = sweep_interval
        self._longest_window = 0.0
        self._last_sweep = clock()

    @property
    def tracked(self) -> int:
        """Number of identifiers with recorded requests."""
        return len(self._requests)

    def sweep(self, now: float | None = None) -> int:
        """Forget identifiers idle for the whole longest window. Returns the count removed."""
        now = self._clock() if now is None else now
        cutoff = now - self._longest_window
        idle = [identifier for identifier, requests in self._requests.items() if requests[-1] <= cutoff]
        for identifier in idle:
            del self._requests[identifier]
        self._last_sweep = now
        if idle:
            logger.debug(f"Rate limit cleanup: forgot {len(idle)} idle identifiers")
        return len(idle)

    def _live(self, identifier: str, window_seconds: float, now: float) -> list[float]:
        cutoff = now - window_seconds
        requests = [ts for ts in self._requests.get(identifier, []) if ts > cutoff]
        if requests:
            self._requests[identifier] = requests
        else:
            self._requests.pop(identifier, None)
        return requests

    async def increment(self, identifier: str, window_seconds: float, limit: int) -> WindowCount:
        now = self._clock()
        self._longest_window = max(self._longest_window, window_seconds)
        if now - self._last_sweep >= self.sweep_interval:
            self.sweep(now)
        requests = self._live(identifier, window_seconds, now)

        if len(requests) >= limit:
            return WindowCount(allowed=False, count=len(requests), window_start=requests[0])

        requests.append(now)
        self._requests[identifier] = requests
        return WindowCount(allowed=True, count=len(requests), window_start=requests[0])

    async def peek(self, identifier: str, window_seconds: float) -> RateLimitWindow:
        requests = self._live(identifier, window_seconds, self._clock())
        return RateLimitWindow(
            identifier=identifier,
            window_start=requests[0] if requests else None,
            count=len(requests),
        )

    async def reset(self, identifier: str) -> None:
        self._requests.pop(identifier, None)


class RedisRateLimitStore(RateLimitStore):
    """Distributed store backed by a Redis sorted set per identifier."""

    def __init__(
        self,
        client: Redis,
        prefix: str = "ratelimit",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize Redis store.

        Args:
            client: Async Redis client
            prefix: Key prefix; role tiers may use separate prefixes
            clock: Time source in epoch seconds
        """
        self.client = client
        self.prefix = prefix
        self._clock = clock
        self._script = client.register_script(SLIDING_WINDOW_SCRIPT)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRateLimitStore":
        """Create a store from a Redis URL."""
        return cls(Redis.from_url(url), **kwargs)

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    async def increment(self, identifier: str, window_seconds: float, limit: int) -> WindowCount:
        now_ms = int(self._clock() * 1000)
        window_ms = int(window_seconds * 1000)
        member = f"{now_ms}-{uuid.uuid4().hex}"

        allowed, count, start = await self._script(
            keys=[self._key(identifier)],
            args=[now_ms, window_ms, limit, member],
        )
        return WindowCount(
            allowed=bool(int(allowed)),
            count=int(count),
            window_start=int(start) / 1000 if int(start) >= 0 else None,
        )

    async def peek(self, identifier: str, window_seconds: float) -> RateLimitWindow:
        key = self._key(identifier)
        now_ms = int(self._clock() * 1000)
        cutoff = now_ms - int(window_seconds * 1000)
        entries = await self.client.zrangebyscore(key, f"({cutoff}", "+inf", withscores=True)
        return RateLimitWindow(
            identifier=identifier,
            window_start=entries[0][1] / 1000 if entries else None,
            count=len(entries),
        )

    async def reset(self, identifier: str) -> None:
        await self.client.delete(self._key(identifier))

    async def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False
