"""Tests for the TTL + LRU response cache."""

from __future__ import annotations

from bgplookup.enrichment.cache import CacheEntry, ResponseCache


def _entry(at_ms: int, payload: object = None) -> CacheEntry:
    return CacheEntry(
        stored_at_ms=at_ms,
        last_accessed_ms=at_ms,
        status=200,
        payload=payload if payload is not None else {"at": at_ms},
        fetched_at="2026-02-11T00:00:00.000Z",
    )


class TestResponseCacheExpiry:
    """Test TTL semantics of ResponseCache."""

    def test_hit_before_ttl_miss_after(self, response_cache: ResponseCache) -> None:
        """Test entry lifetime boundary.

        Given: Entry stored at t=1000 with TTL 500
        When: Read at t=1499 and again at t=1501
        Then: First read hits, second misses
        """
        response_cache.put("k", _entry(1000))

        assert response_cache.get("k", now_ms=1499, ttl_ms=500) is not None
        assert response_cache.get("k", now_ms=1501, ttl_ms=500) is None

    def test_entry_at_exact_ttl_is_expired(self, response_cache: ResponseCache) -> None:
        response_cache.put("k", _entry(1000))

        assert response_cache.get("k", now_ms=1500, ttl_ms=500) is None

    def test_expired_entry_left_for_prune(self, response_cache: ResponseCache) -> None:
        response_cache.put("k", _entry(1000))

        response_cache.get("k", now_ms=5000, ttl_ms=500)

        assert "k" in response_cache
        assert response_cache.prune(now_ms=5000, ttl_ms=500, max_entries=10) == 1
        assert "k" not in response_cache

    def test_prune_without_ttl_only_enforces_capacity(self, response_cache: ResponseCache) -> None:
        for i in range(3):
            response_cache.put(f"k{i}", _entry(i))

        removed = response_cache.prune(now_ms=10_000_000, ttl_ms=0, max_entries=10)

        assert removed == 0
        assert len(response_cache) == 3

    def test_lookup_prunes_expired_entries(self, response_cache: ResponseCache) -> None:
        response_cache.put("old", _entry(0))
        response_cache.put("fresh", _entry(900))

        entry = response_cache.lookup("fresh", now_ms=1000, ttl_ms=500, max_entries=10)

        assert entry is not None
        assert "old" not in response_cache
        assert response_cache.get_stats()["expired"] == 1


class TestResponseCacheCapacity:
    """Test LRU eviction of ResponseCache."""

    def test_least_recently_accessed_evicted_first(self, response_cache: ResponseCache) -> None:
        """Test recently read entries survive eviction.

        Given: Cache of capacity 3 holding a, b, c, with a read after c
        When: d and e are stored
        Then: b and c are evicted, a survives
        """
        ttl = 60_000
        for at, key in enumerate(("a", "b", "c"), start=1):
            response_cache.store(key, _entry(at), now_ms=at, ttl_ms=ttl, max_entries=3)
        assert response_cache.lookup("a", now_ms=4, ttl_ms=ttl, max_entries=3) is not None

        response_cache.store("d", _entry(5), now_ms=5, ttl_ms=ttl, max_entries=3)
        response_cache.store("e", _entry(6), now_ms=6, ttl_ms=ttl, max_entries=3)

        assert len(response_cache) == 3
        assert "a" in response_cache
        assert "b" not in response_cache
        assert "c" not in response_cache
        assert response_cache.get_stats()["evicted"] == 2

    def test_store_never_exceeds_capacity(self, response_cache: ResponseCache) -> None:
        for i in range(50):
            response_cache.store(f"k{i}", _entry(i), now_ms=i, ttl_ms=60_000, max_entries=5)
            assert len(response_cache) <= 5

    def test_overwrite_does_not_grow(self, response_cache: ResponseCache) -> None:
        response_cache.store("k", _entry(1), now_ms=1, ttl_ms=60_000, max_entries=5)
        response_cache.store("k", _entry(2, {"v": 2}), now_ms=2, ttl_ms=60_000, max_entries=5)

        entry = response_cache.get("k", now_ms=3, ttl_ms=60_000)

        assert len(response_cache) == 1
        assert entry is not None
        assert entry.payload == {"v": 2}


class TestResponseCacheSnapshots:
    """Test that cached payloads cannot be mutated through hits."""

    def test_hit_returns_copy(self, response_cache: ResponseCache) -> None:
        response_cache.put("k", _entry(0, {"data": {"asns": ["15169"]}}))

        first = response_cache.get("k", now_ms=1, ttl_ms=1000)
        assert first is not None
        first.payload["data"]["asns"].append("36040")

        second = response_cache.get("k", now_ms=2, ttl_ms=1000)
        assert second is not None
        assert second.payload == {"data": {"asns": ["15169"]}}

    def test_hit_refreshes_last_access(self, response_cache: ResponseCache) -> None:
        response_cache.put("k", _entry(0))

        entry = response_cache.get("k", now_ms=42, ttl_ms=1000)

        assert entry is not None
        assert entry.last_accessed_ms == 42
        assert entry.age_ms(42) == 42

    def test_stats_and_clear(self, response_cache: ResponseCache) -> None:
        response_cache.put("k", _entry(0))
        response_cache.get("k", now_ms=1, ttl_ms=1000)
        response_cache.get("missing", now_ms=1, ttl_ms=1000)

        stats = response_cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["stores"] == 1

        response_cache.clear()
        response_cache.reset_stats()

        assert len(response_cache) == 0
        assert all(value == 0 for value in response_cache.get_stats().values())
