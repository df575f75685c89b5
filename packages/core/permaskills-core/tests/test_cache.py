"""Tests for CacheStore."""

import pytest

from permaskills_core import CacheStore


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestMakeKey:
    def test_parameter_order_does_not_matter(self):
        a = CacheStore.make_key("getSkill", {"name": "x", "version": "1.0.0"})
        b = CacheStore.make_key("getSkill", {"version": "1.0.0", "name": "x"})
        assert a == b

    def test_operation_is_part_of_key(self):
        assert CacheStore.make_key("a", {"q": 1}) != CacheStore.make_key("b", {"q": 1})

    def test_no_params(self):
        assert CacheStore.make_key("info") == "info:{}"

    def test_compact_form(self):
        assert CacheStore.make_key("search", {"query": "pdf"}) == 'search:{"query":"pdf"}'


class TestCacheStore:
    def test_set_and_get(self):
        cache = CacheStore()
        cache.set("k", [1, 2])
        assert cache.get("k") == [1, 2]

    def test_missing_returns_default(self):
        assert CacheStore().get("nope", "fallback") == "fallback"

    def test_entry_valid_before_ttl(self):
        clock = FakeClock()
        cache = CacheStore(ttl=300, clock=clock)
        cache.set("k", "v")
        clock.now += 299.9
        assert cache.get("k") == "v"

    def test_entry_expires_at_ttl(self):
        clock = FakeClock()
        cache = CacheStore(ttl=300, clock=clock)
        cache.set("k", "v")
        clock.now += 300
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_set_refreshes_timestamp(self):
        clock = FakeClock()
        cache = CacheStore(ttl=10, clock=clock)
        cache.set("k", "old")
        clock.now += 8
        cache.set("k", "new")
        clock.now += 8
        assert cache.get("k") == "new"

    def test_clear(self):
        cache = CacheStore()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0
        assert "a" not in cache

    def test_contains(self):
        cache = CacheStore()
        cache.set("a", None)
        assert "a" in cache
        assert "b" not in cache
        assert 42 not in cache

    def test_non_positive_ttl_rejected(self):
        with pytest.raises(ValueError):
            CacheStore(ttl=0)

    def test_default_ttl_is_five_minutes(self):
        assert CacheStore().ttl == 300
