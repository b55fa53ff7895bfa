"""Tests for the response cache."""

import asyncio
import fnmatch
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from docchat.cache import (
    CacheHit,
    CacheMiss,
    CacheNamespace,
    CacheTTL,
    InMemoryCacheStore,
    RedisCacheStore,
    ResponseCache,
    normalize_question,
    question_cache_key,
)
from docchat.cache.response_cache import serialize


def fake_scan(*keys):
    async def scan(match, count):
        for key in keys:
            yield key

    return scan


class TestQuestionKeys:
    """Test cache key normalization."""

    def test_normalization(self):
        assert normalize_question("  What's the   VACATION policy?! ") == "whats the vacation policy"

    def test_equivalent_questions_share_key(self):
        assert question_cache_key("What is PTO?", "user-1") == question_cache_key("what is pto", "user-1")

    def test_key_is_scoped_to_user(self):
        assert question_cache_key("What is PTO?", "user-1") != question_cache_key("What is PTO?", "user-2")

    def test_key_length_bounded(self):
        key = question_cache_key("x" * 5000, "user-1")
        assert len(key) == 16
        assert all(c in "0123456789abcdef" for c in key)


class TestInMemoryCacheStore:
    """Test the LRU store."""

    @pytest.mark.asyncio
    async def test_expired_entries_not_returned(self, clock):
        store = InMemoryCacheStore(capacity=10, clock=clock)
        await store.set("ns", "k", "v", ttl=10)

        clock.advance(9.9)
        assert await store.get("ns", "k") == "v"
        clock.advance(0.1)
        assert await store.get("ns", "k") is None
        assert await store.size() == 0

    @pytest.mark.asyncio
    async def test_reads_do_not_extend_ttl(self, clock):
        store = InMemoryCacheStore(capacity=10, clock=clock)
        await store.set("ns", "k", "v", ttl=10)

        for _ in range(4):
            clock.advance(2)
            assert await store.get("ns", "k") == "v"

        clock.advance(2)
        assert await store.get("ns", "k") is None

    @pytest.mark.asyncio
    async def test_rewrite_restarts_ttl(self, clock):
        store = InMemoryCacheStore(capacity=10, clock=clock)
        await store.set("ns", "k", "old", ttl=10)
        clock.advance(8)
        await store.set("ns", "k", "new", ttl=10)
        clock.advance(8)

        assert await store.get("ns", "k") == "new"

    @pytest.mark.asyncio
    async def test_lru_eviction_independent_of_ttl(self, clock):
        store = InMemoryCacheStore(capacity=2, clock=clock)
        await store.set("ns", "a", "1", ttl=CacheTTL.VERY_LONG)
        await store.set("ns", "b", "2", ttl=CacheTTL.VERY_SHORT)
        await store.get("ns", "a")

        await store.set("ns", "c", "3", ttl=CacheTTL.VERY_SHORT)

        assert await store.get("ns", "b") is None
        assert await store.get("ns", "a") == "1"
        assert await store.get("ns", "c") == "3"
        assert store.evictions == 1

    @pytest.mark.asyncio
    async def test_clear_namespace_leaves_others(self, clock):
        store = InMemoryCacheStore(capacity=10, clock=clock)
        await store.set("history:s1", "recent", "a", ttl=60)
        await store.set("history:s1", "other", "b", ttl=60)
        await store.set("history:s2", "recent", "c", ttl=60)
        await store.set(CacheNamespace.CHAT_RESPONSES, "recent", "d", ttl=60)

        removed = await store.clear_namespace("history:s1")

        assert removed == 2
        assert await store.get("history:s2", "recent") == "c"
        assert await store.get(CacheNamespace.CHAT_RESPONSES, "recent") == "d"

    @pytest.mark.asyncio
    async def test_purge_expired(self, clock):
        store = InMemoryCacheStore(capacity=10, clock=clock)
        await store.set("ns", "short", "1", ttl=5)
        await store.set("ns", "long", "2", ttl=50)
        clock.advance(10)

        assert store.purge_expired() == 1
        assert await store.size() == 1

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryCacheStore(capacity=0)


class TestRedisCacheStore:
    """Test the Redis store with a mocked client."""

    @pytest.mark.asyncio
    async def test_set_uses_millisecond_expiry(self):
        client = MagicMock()
        client.set = AsyncMock()
        store = RedisCacheStore(client, prefix="docchat")

        await store.set("chat_responses", "abc", '{"a":1}', ttl=1.5)

        client.set.assert_awaited_once_with("docchat:chat_responses:abc", '{"a":1}', px=1500)

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=b'{"a":1}')
        store = RedisCacheStore(client)

        assert await store.get("ns", "k") == '{"a":1}'

    @pytest.mark.asyncio
    async def test_clear_namespace_pattern_is_literal(self):
        client = MagicMock()
        client.set = AsyncMock()
        client.scan_iter = MagicMock(side_effect=fake_scan(b"docchat:history%3Aa%2A:recent"))
        client.delete = AsyncMock(return_value=1)
        store = RedisCacheStore(client, prefix="docchat")

        await store.set(CacheNamespace.history("a*"), "recent", "[]", ttl=60)
        removed = await store.clear_namespace(CacheNamespace.history("a*"))

        assert removed == 1
        client.set.assert_awaited_once_with("docchat:history%3Aa%2A:recent", "[]", px=60000)
        client.scan_iter.assert_called_once_with(match="docchat:history%3Aa%2A:*", count=500)

    @pytest.mark.asyncio
    async def test_clear_namespace_does_not_reach_nested_sessions(self):
        client = MagicMock()
        client.scan_iter = MagicMock(side_effect=fake_scan())
        store = RedisCacheStore(client, prefix="docchat")

        await store.clear_namespace(CacheNamespace.history("a"))

        pattern = client.scan_iter.call_args.kwargs["match"]
        assert fnmatch.fnmatchcase(store._key(CacheNamespace.history("a"), "recent"), pattern)
        assert not fnmatch.fnmatchcase(store._key(CacheNamespace.history("a:b"), "recent"), pattern)

    @pytest.mark.asyncio
    async def test_prefix_is_escaped(self):
        client = MagicMock()
        client.scan_iter = MagicMock(side_effect=fake_scan())
        store = RedisCacheStore(client, prefix="dc[1]")

        await store.clear_namespace(CacheNamespace.history("a"))

        assert client.scan_iter.call_args.kwargs["match"] == r"dc\[1\]:history%3Aa:*"


class TestResponseCache:
    """Test the cache facade."""

    @pytest.mark.asyncio
    async def test_hit_and_miss(self, clock):
        cache = ResponseCache(InMemoryCacheStore(clock=clock))

        assert isinstance(await cache.lookup("ns", "k"), CacheMiss)
        await cache.set("ns", "k", {"answer": "yes"})
        result = await cache.lookup("ns", "k")

        assert isinstance(result, CacheHit)
        assert result.value == {"answer": "yes"}

    @pytest.mark.asyncio
    async def test_reads_are_byte_identical_and_unshared(self, clock):
        cache = ResponseCache(InMemoryCacheStore(clock=clock))
        value = {"answer": "Twenty days", "sources": [{"title": "Handbook", "author": None}]}
        await cache.set(CacheNamespace.CHAT_RESPONSES, "k", value)

        first = await cache.get(CacheNamespace.CHAT_RESPONSES, "k")
        first["sources"].append({"title": "mutated"})
        second = await cache.get(CacheNamespace.CHAT_RESPONSES, "k")

        assert serialize(second) == serialize(value)
        assert second == value

    @pytest.mark.asyncio
    async def test_default_ttl(self, clock):
        cache = ResponseCache(InMemoryCacheStore(clock=clock), default_ttl=CacheTTL.VERY_SHORT)
        await cache.set("ns", "k", 1)

        clock.advance(29)
        assert await cache.get("ns", "k") == 1
        clock.advance(1)
        assert await cache.get("ns", "k") is None

    @pytest.mark.asyncio
    async def test_store_failure_is_a_miss(self, caplog):
        store = MagicMock()
        store.get = AsyncMock(side_effect=RedisConnectionError("down"))
        cache = ResponseCache(store)

        result = await cache.lookup("ns", "k")

        assert result == CacheMiss(reason="store_error")
        assert "Cache read failed" in caplog.text

    @pytest.mark.asyncio
    async def test_store_failure_drops_write(self):
        store = MagicMock()
        store.set = AsyncMock(side_effect=RedisConnectionError("down"))
        cache = ResponseCache(store)

        assert await cache.set("ns", "k", {"a": 1}) is False

    @pytest.mark.asyncio
    async def test_slow_store_times_out(self):
        async def slow_get(namespace, key):
            await asyncio.sleep(1)

        store = MagicMock()
        store.get = slow_get
        cache = ResponseCache(store, store_timeout=0.01)

        assert isinstance(await cache.lookup("ns", "k"), CacheMiss)

    @pytest.mark.asyncio
    async def test_stats(self, clock):
        cache = ResponseCache(InMemoryCacheStore(capacity=1, clock=clock))
        await cache.set("ns", "a", 1)
        await cache.set("ns", "b", 2)
        await cache.get("ns", "a")
        await cache.get("ns", "b")

        stats = await cache.stats()

        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.evictions == 1
        assert stats.entries == 1
        assert stats.hit_rate == 0.5

    @pytest.mark.asyncio
    async def test_clear_namespace(self, clock):
        cache = ResponseCache(InMemoryCacheStore(clock=clock))
        await cache.set(CacheNamespace.history("s1"), "recent", [1])
        await cache.set(CacheNamespace.history("s2"), "recent", [2])

        assert await cache.clear_namespace(CacheNamespace.history("s1")) == 1
        assert await cache.get(CacheNamespace.history("s2"), "recent") == [2]
