"""Tests for the in-process TTL cache."""

from parts_radar.infra.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestTTLCache:
    def test_hit_before_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=30, clock=clock)
        cache.put("k", [1, 2])

        clock.now += 29
        assert cache.get("k") == (True, [1, 2])

    def test_miss_after_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=30, clock=clock)
        cache.put("k", "v")

        clock.now += 30
        assert cache.get("k") == (False, None)
        assert len(cache) == 0

    def test_cached_none_is_a_hit(self):
        cache = TTLCache(ttl_seconds=30)
        cache.put("k", None)
        assert cache.get("k") == (True, None)

    def test_zero_ttl_disables_caching(self):
        cache = TTLCache(ttl_seconds=0)
        cache.put("k", "v")
        assert cache.get("k") == (False, None)

    def test_oldest_entry_evicted(self):
        cache = TTLCache(ttl_seconds=60, max_size=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")  # a becomes most recent
        cache.put("c", 3)

        assert cache.get("b") == (False, None)
        assert cache.get("a") == (True, 1)
        assert cache.get("c") == (True, 3)

    def test_invalidate_single_key_and_all(self):
        cache = TTLCache(ttl_seconds=60)
        cache.put("a", 1)
        cache.put("b", 2)

        cache.invalidate("a")
        assert cache.get("a") == (False, None)
        assert cache.get("b") == (True, 2)

        cache.invalidate()
        assert len(cache) == 0
