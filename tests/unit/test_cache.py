"""
Unit tests for the result cache: LRU and TTL eviction.
"""

import threading

import pytest

from linkcard import ResultCache


@pytest.fixture
def cache(clock):
    return ResultCache(capacity=3, ttl_seconds=60, clock=clock)


class TestGetSet:
    def test_miss(self, cache):
        assert cache.get("https://a") is None

    def test_hit_returns_same_object(self, cache):
        value = object()
        cache.set("https://a", value)
        assert cache.get("https://a") is value

    def test_overwrite(self, cache):
        cache.set("https://a", 1)
        cache.set("https://a", 2)
        assert cache.get("https://a") == 2
        assert len(cache) == 1

    def test_delete_and_clear(self, cache):
        cache.set("https://a", 1)
        cache.set("https://b", 2)
        assert cache.delete("https://a") is True
        assert cache.delete("https://a") is False
        cache.clear()
        assert len(cache) == 0

    def test_invalid_construction(self):
        with pytest.raises(ValueError):
            ResultCache(capacity=0)
        with pytest.raises(ValueError):
            ResultCache(ttl_seconds=0)


class TestLruEviction:
    def test_evicts_least_recently_inserted(self, cache):
        for key in ("a", "b", "c", "d"):
            cache.set(key, key)
        assert "a" not in cache
        assert len(cache) == 3

    def test_access_refreshes_recency(self, cache):
        for key in ("a", "b", "c"):
            cache.set(key, key)
        cache.get("a")
        cache.set("d", "d")
        assert cache.get("a") == "a"
        assert cache.get("b") is None

    def test_eviction_without_expiry(self, cache, clock):
        for key in ("a", "b", "c", "d", "e"):
            cache.set(key, key)
            clock.advance(1)
        assert [k for k in "abcde" if k in cache] == ["c", "d", "e"]


class TestTtlExpiry:
    def test_expired_entry_is_a_miss(self, cache, clock):
        cache.set("a", "value")
        clock.advance(61)
        assert cache.get("a") is None

    def test_expired_entry_is_evicted(self, cache, clock):
        cache.set("a", "value")
        clock.advance(61)
        cache.get("a")
        assert len(cache) == 0

    def test_fresh_entry_survives(self, cache, clock):
        cache.set("a", "value")
        clock.advance(59)
        assert cache.get("a") == "value"

    def test_expiry_without_capacity_pressure(self, clock):
        cache = ResultCache(capacity=100, ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.advance(11)
        assert "a" not in cache

    def test_overflow_purges_expired_before_evicting_live(self, cache, clock):
        cache.set("old", 0)
        clock.advance(30)
        cache.set("b", 1)
        cache.set("c", 2)
        clock.advance(31)  # "old" expired, b and c still live
        cache.set("d", 3)
        assert cache.get("b") == 1
        assert cache.get("c") == 2
        assert cache.get("d") == 3

    def test_refresh_extends_ttl(self, cache, clock):
        cache.set("a", 1)
        clock.advance(50)
        cache.set("a", 2)
        clock.advance(50)
        assert cache.get("a") == 2


def test_concurrent_writes_respect_capacity():
    cache = ResultCache(capacity=50, ttl_seconds=60)

    def writer(offset):
        for i in range(200):
            cache.set(f"https://example.com/{offset}/{i}", i)
            cache.get(f"https://example.com/{offset}/{i // 2}")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) == 50
