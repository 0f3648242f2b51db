"""
Board cache tests.

Tests cover:
  - TTL expiry against an injected clock
  - Oldest-first eviction at max_entries
  - invalidate / invalidate_prefix / clear
  - get_or_load() awaiting the loader only on a miss
"""
import pytest

from roadmap_engine.services import TimedCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return TimedCache(ttl_seconds=30, max_entries=3, clock=clock)


class TestExpiry:
    def test_fresh_entry_returned(self, cache, clock):
        cache.set("k", [1, 2])
        clock.advance(30)
        assert cache.get("k") == [1, 2]
        assert cache.stored_at("k") == 1000.0

    def test_stale_entry_dropped(self, cache, clock):
        cache.set("k", "v")
        clock.advance(31)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_set_refreshes_timestamp(self, cache, clock):
        cache.set("k", "old")
        clock.advance(20)
        cache.set("k", "new")
        clock.advance(20)
        assert cache.get("k") == "new"

    def test_default_for_missing(self, cache):
        assert cache.get("missing", "fallback") == "fallback"


class TestBounds:
    def test_oldest_evicted(self, cache):
        for key in ("a", "b", "c", "d"):
            cache.set(key, key)
        assert len(cache) == 3
        assert cache.get("a") is None
        assert cache.get("d") == "d"

    def test_rewritten_key_moves_to_back(self, cache):
        for key in ("a", "b", "c"):
            cache.set(key, key)
        cache.set("a", "again")
        cache.set("d", "d")
        assert cache.get("a") == "again"
        assert cache.get("b") is None

    def test_rejects_empty_capacity(self):
        with pytest.raises(ValueError):
            TimedCache(max_entries=0)


class TestInvalidation:
    def test_invalidate_single_key(self, cache):
        cache.set("k", 1)
        cache.invalidate("k")
        cache.invalidate("never-set")
        assert cache.get("k") is None

    def test_invalidate_prefix(self, cache):
        cache.set(("acct", "p1", "tickets"), 1)
        cache.set(("acct", "p1", "pending"), 2)
        cache.set(("acct", "p2", "tickets"), 3)

        assert cache.invalidate_prefix(("acct", "p1")) == 2
        assert cache.get(("acct", "p2", "tickets")) == 3
        assert len(cache) == 1

    def test_invalidate_prefix_skips_non_tuple_keys(self, cache):
        cache.set("acct", 1)
        assert cache.invalidate_prefix(("acct",)) == 0

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0


class TestGetOrLoad:
    def test_loads_once(self, cache, run):
        calls = []

        async def loader():
            calls.append(1)
            return ["ticket"]

        assert run(cache.get_or_load("k", loader)) == ["ticket"]
        assert run(cache.get_or_load("k", loader)) == ["ticket"]
        assert len(calls) == 1

    def test_reloads_after_expiry(self, cache, clock, run):
        values = iter(["first", "second"])

        async def loader():
            return next(values)

        assert run(cache.get_or_load("k", loader)) == "first"
        clock.advance(31)
        assert run(cache.get_or_load("k", loader)) == "second"

    def test_cached_falsy_value_not_reloaded(self, cache, run):
        calls = []

        async def loader():
            calls.append(1)
            return []

        run(cache.get_or_load("k", loader))
        run(cache.get_or_load("k", loader))
        assert len(calls) == 1
