"""Cache data structures."""

from dataclasses import dataclass
from typing import Any


class CacheTTL:
    """TTL presets in seconds."""

    VERY_SHORT = 30
    SHORT = 5 * 60
    MEDIUM = 30 * 60
    LONG = 2 * 60 * 60
    VERY_LONG = 24 * 60 * 60


class CacheNamespace:
    """Namespaces in use.

    Conversation history gets one namespace per session so a single
    conversation can be invalidated without touching the others.
    """

    CHAT_RESPONSES = "chat_responses"
    USER_MEMORY = "user_memory"

    @staticmethod
    def history(session_id: str) -> str:
        return f"history:{session_id}"


@dataclass(frozen=True)
class CacheEntry:
    """A stored value. Replaced wholesale on every write."""

    key: str
    value: str
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


@dataclass(frozen=True)
class CacheHit:
    """Lookup found a live entry."""

    value: Any


@dataclass(frozen=True)
class CacheMiss:
    """Lookup found nothing, or only an expired entry."""

    reason: str = "absent"


CacheLookup = CacheHit | CacheMiss


@dataclass
class CacheStats:
    """Counters for one cache instance."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    evictions: int = 0
    entries: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0
