"""Response cache module."""

from .keys import normalize_question, question_cache_key
from .models import CacheEntry, CacheHit, CacheLookup, CacheMiss, CacheNamespace, CacheStats, CacheTTL
from .response_cache import ResponseCache
from .store import CacheStore, InMemoryCacheStore, RedisCacheStore

__all__ = [
    "CacheEntry",
    "CacheHit",
    "CacheLookup",
    "CacheMiss",
    "CacheNamespace",
    "CacheStats",
    "CacheStore",
    "CacheTTL",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "ResponseCache",
    "normalize_question",
    "question_cache_key",
]
