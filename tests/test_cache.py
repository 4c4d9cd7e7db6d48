"""
Unit tests for key generation, the LRU cache and the cache/TTL store.
"""
import asyncio
import logging

import pytest

from async_enhance.core import CacheEntry, Scope, FUNCTION_SCOPE_KEY
from async_enhance.keys import KeyGenerator, default_key_generator
from async_enhance.lru import LRUCache
from async_enhance.store import CacheStore
from config.settings import Settings


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# =============================================================================
# Key Generator Tests
# =============================================================================

class TestKeyGenerator:
    """Tests for call key derivation."""

    def test_equal_parameters_give_equal_keys(self):
        keys = KeyGenerator()
        first = keys((1, {"a": 1, "b": [1, 2]}), {"page": 2, "size": 10})
        second = keys((1, {"b": [1, 2], "a": 1}), {"size": 10, "page": 2})
        assert first == second

    def test_distinct_parameters_give_distinct_keys(self):
        keys = KeyGenerator()
        assert keys((1,), {}) != keys((2,), {})
        assert keys((1,), {}) != keys((), {"x": 1})

    def test_default_key_is_json(self):
        assert default_key_generator((1, "a"), {}) == '[[1,"a"],{}]'

    def test_cyclic_parameters_fall_back(self, caplog):
        cyclic = []
        cyclic.append(cyclic)
        keys = KeyGenerator()

        with caplog.at_level(logging.WARNING, logger="enhance.keys"):
            key = keys((cyclic,), {})

        assert key == "[]"
        assert "falling back" in caplog.text

    def test_json_equivalent_parameters_share_a_key(self):
        keys = KeyGenerator()
        assert keys(((1, 2),), {}) == keys(([1, 2],), {})
        assert keys(({1: "x"},), {}) == keys(({"1": "x"},), {})

    def test_non_serializable_parameters_share_one_key(self):
        keys = KeyGenerator()
        assert keys((object(),), {}) == keys((object(),), {})

    def test_custom_generator(self):
        keys = KeyGenerator(lambda args, kwargs: f"user:{args[0]}")
        assert keys((42,), {}) == "user:42"

    def test_custom_generator_failure_is_recovered(self):
        def broken(args, kwargs):
            raise KeyError("missing")

        assert KeyGenerator(broken)((1,), {}) == "[]"


# =============================================================================
# Scope Tests
# =============================================================================

class TestScope:
    """Tests for registry key selection."""

    def test_function_scope_uses_reserved_key(self):
        assert Scope.FUNCTION.key_for("[[1],{}]") == FUNCTION_SCOPE_KEY
        assert Scope.FUNCTION.key_for("[[2],{}]") == FUNCTION_SCOPE_KEY

    def test_parameters_scope_uses_call_key(self):
        assert Scope.PARAMETERS.key_for("[[1],{}]") == "[[1],{}]"


# =============================================================================
# LRU Tests
# =============================================================================

class TestLRUCache:
    """Tests for the bounded cache."""

    def test_evicts_least_recently_used(self):
        lru = LRUCache(2)
        lru.set("A", 1)
        lru.set("B", 2)
        lru.set("C", 3)

        assert lru.get("A") is None
        assert lru.get("B") == 2
        assert lru.get("C") == 3
        assert len(lru) == 2

    def test_get_refreshes_recency(self):
        lru = LRUCache(2)
        lru.set("A", 1)
        lru.set("B", 2)
        lru.get("A")
        lru.set("C", 3)

        assert "A" in lru
        assert "B" not in lru

    def test_set_existing_key_refreshes_recency(self):
        lru = LRUCache(2)
        lru.set("A", 1)
        lru.set("B", 2)
        lru.set("A", 10)
        lru.set("C", 3)

        assert lru.get("A") == 10
        assert "B" not in lru

    def test_peek_does_not_refresh_recency(self):
        lru = LRUCache(2)
        lru.set("A", 1)
        lru.set("B", 2)
        assert lru.peek("A") == 1
        lru.set("C", 3)

        assert "A" not in lru

    def test_delete_and_clear(self):
        lru = LRUCache(3)
        lru.set("A", 1)
        lru.set("B", 2)

        assert lru.delete("A") is True
        assert lru.delete("A") is False
        lru.clear()
        assert len(lru) == 0

    def test_size_never_exceeds_capacity(self):
        lru = LRUCache(5)
        for i in range(100):
            lru.set(i, i)
            assert len(lru) <= 5
        assert [k for k, _ in lru.items()] == [95, 96, 97, 98, 99]

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_rejects_non_positive_capacity(self, capacity):
        with pytest.raises(ValueError):
            LRUCache(capacity)


# =============================================================================
# Cache Store Tests
# =============================================================================

class TestCacheStore:
    """Tests for freshness, write-through rules and sweeping."""

    def test_ttl_freshness_window(self):
        clock = FakeClock()
        store = CacheStore(ttl=1.0, clock=clock)
        store.write("k", "value")

        clock.now = 0.5
        assert store.lookup("k").data == "value"

        clock.now = 1.5
        assert store.lookup("k") is None

    def test_disabled_store_never_caches(self):
        store = CacheStore(ttl=-1, capacity=-1)
        assert store.enabled is False
        assert store.write("k", 1) is False
        assert store.lookup("k") is None

    def test_capacity_without_ttl_never_expires(self):
        clock = FakeClock()
        store = CacheStore(ttl=-1, capacity=2, clock=clock)
        store.write("k", 1)
        clock.now = 10_000
        assert store.lookup("k").data == 1

    def test_bounded_store_evicts(self):
        store = CacheStore(capacity=2)
        store.write("A", 1)
        store.write("B", 2)
        store.write("C", 3)

        assert store.lookup("A") is None
        assert len(store) == 2

    def test_lookup_marks_recently_used(self):
        store = CacheStore(capacity=2)
        store.write("A", 1)
        store.write("B", 2)
        store.lookup("A")
        store.write("C", 3)

        assert "A" in store
        assert "B" not in store

    def test_expired_lookup_does_not_refresh_recency(self):
        clock = FakeClock()
        store = CacheStore(ttl=1.0, capacity=2, clock=clock)
        store.write("A", 1)
        clock.now = 0.8
        store.write("B", 2)

        clock.now = 1.5
        assert store.lookup("A") is None
        store.write("C", 3)

        assert "A" not in store
        assert store.lookup("B").data == 2

    @pytest.mark.parametrize("falsy", [0, "", None, False, []])
    def test_falsy_values_are_hits(self, falsy):
        store = CacheStore(ttl=10)
        store.write("k", falsy)

        entry = store.lookup("k")
        assert isinstance(entry, CacheEntry)
        assert entry.data == falsy

    def test_identical_data_is_not_rewritten(self):
        clock = FakeClock()
        store = CacheStore(ttl=1.0, clock=clock)
        data = {"id": 1}
        assert store.write("k", data) is True

        clock.now = 0.9
        assert store.write("k", data) is False
        clock.now = 1.2
        # Timestamp was not refreshed by the skipped write
        assert store.lookup("k") is None

    def test_forced_write_refreshes_timestamp(self):
        clock = FakeClock()
        store = CacheStore(ttl=1.0, clock=clock)
        data = {"id": 1}
        store.write("k", data)

        clock.now = 0.9
        assert store.write("k", data, force=True) is True
        clock.now = 1.2
        assert store.lookup("k").data is data

    def test_sweep_removes_only_expired(self):
        clock = FakeClock()
        store = CacheStore(ttl=1.0, clock=clock)
        store.write("old", 1)
        clock.now = 0.8
        store.write("new", 2)

        clock.now = 1.2
        assert store.sweep() == 1
        assert "old" not in store
        assert "new" in store
        assert store.get_stats()["expired_swept"] == 1

    def test_delete_and_clear(self):
        store = CacheStore(ttl=10)
        store.write("A", 1)
        store.write("B", 2)

        assert store.delete("A") is True
        assert store.delete("A") is False
        assert store.clear() == 1
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_scheduled_sweep_runs_once_after_burst(self, monkeypatch):
        clock = FakeClock()
        store = CacheStore(ttl=1.0, clock=clock, sweep_delay=0.01)
        store.write("k", 1)
        clock.now = 5.0

        sweeps = []
        original = store.sweep

        def counting_sweep():
            sweeps.append(clock.now)
            return original()

        monkeypatch.setattr(store, "sweep", counting_sweep)

        for _ in range(5):
            store.schedule_sweep()
        await asyncio.sleep(0.05)

        assert len(sweeps) == 1
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_close_cancels_pending_sweep(self):
        clock = FakeClock()
        store = CacheStore(ttl=1.0, clock=clock, sweep_delay=0.01)
        store.write("k", 1)
        clock.now = 5.0

        store.schedule_sweep()
        store.close()
        await asyncio.sleep(0.03)

        assert "k" in store


# =============================================================================
# Settings Tests
# =============================================================================

class TestSettings:
    """Tests for environment driven defaults."""

    def test_defaults(self):
        s = Settings()
        assert s.fallback_key == "[]"
        assert s.sweep_delay_seconds == 0.0

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ASYNC_ENHANCE_DEFAULT_TTL_SECONDS", "30")
        monkeypatch.setenv("ASYNC_ENHANCE_FALLBACK_KEY", "shared")

        s = Settings()
        assert s.default_ttl_seconds == 30
        assert s.fallback_key == "shared"
