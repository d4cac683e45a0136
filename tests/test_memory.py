"""Tests for the bounded in-process map."""

import asyncio

import pytest

from ideabank.core.memory import BoundedMap, RateLimitEntry, create_rate_limit_map

from .conftest import FrozenClock


class TestBoundedMap:
    def setup_method(self):
        self.clock = FrozenClock()
        self.map = BoundedMap(
            3,
            is_expired=lambda value, now: value["expires"] <= now,
            name="test_map",
            clock=self.clock,
        )

    def _put(self, key, ttl=100):
        self.map.set(key, {"key": key, "expires": self.clock() + ttl})

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            BoundedMap(0)

    def test_evicts_least_recently_used_when_full(self):
        self._put("a")
        self.clock.advance(1)
        self._put("b")
        self.clock.advance(1)
        self._put("c")
        self.clock.advance(1)

        # Touch "a" so "b" becomes the oldest entry
        assert self.map.get("a") is not None
        self.clock.advance(1)
        self._put("d")

        assert len(self.map) == 3
        assert "b" not in self.map
        assert {"a", "c", "d"} == set(self.map.keys())
        assert self.map.stats()["evictions"] == 1

    def test_updating_existing_key_does_not_evict(self):
        self._put("a")
        self._put("b")
        self._put("c")
        self._put("b", ttl=500)

        assert len(self.map) == 3
        assert self.map.stats()["evictions"] == 0

    def test_expired_entry_is_dropped_on_access(self):
        self._put("a", ttl=10)
        self.clock.advance(10)

        assert self.map.get("a") is None
        assert len(self.map) == 0

    def test_force_cleanup_counts_removed_entries(self):
        self._put("short", ttl=5)
        self._put("long", ttl=500)
        self.clock.advance(60)

        assert self.map.force_cleanup() == 1
        assert list(self.map.keys()) == ["long"]
        assert self.map.stats()["cleanups"] == 1

    def test_delete_and_clear(self):
        self._put("a")
        self._put("b")

        assert self.map.delete("a") is True
        assert self.map.delete("a") is False
        self.map.clear()
        assert len(self.map) == 0

    @pytest.mark.asyncio
    async def test_start_and_stop_background_sweep(self):
        self.map.start()
        assert self.map.running

        await self.map.stop()
        assert not self.map.running

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self):
        await self.map.stop()
        assert not self.map.running


class TestRateLimitMap:
    def test_entry_expires_after_reset(self):
        clock = FrozenClock()
        registry = create_rate_limit_map("limits", clock=clock)
        registry.set("user-1", RateLimitEntry(count=3, reset_at=clock() + 60))

        clock.advance(60)
        assert registry.get("user-1") is not None

        clock.advance(1)
        assert registry.get("user-1") is None


@pytest.mark.asyncio
async def test_sweep_runs_on_interval():
    clock = FrozenClock()
    bounded = BoundedMap(
        10,
        is_expired=lambda value, now: value <= now,
        cleanup_interval=0.01,
        clock=clock,
    )
    bounded.set("gone", clock() - 1)
    bounded.start()
    try:
        await asyncio.sleep(0.05)
    finally:
        await bounded.stop()

    assert len(bounded) == 0
