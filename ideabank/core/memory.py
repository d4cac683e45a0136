"""
Bounded in-process maps with LRU eviction and periodic expiry sweeps.

Used for per-user rate-limit counters and the fast cache tier. Each map is an
explicitly constructed component: callers own ``start()``/``stop()`` of the
background sweep, so tests can drive expiry with ``force_cleanup()``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterator, Optional, Tuple, TypeVar

from ideabank.config import logger

V = TypeVar("V")

DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60


@dataclass(slots=True)
class _Slot:
    value: Any
    last_access: float


@dataclass(slots=True)
class RateLimitEntry:
    """Fixed-window counter state for a single key."""

    count: int
    reset_at: float


class BoundedMap(Generic[V]):
    """Size-capped map evicting the least recently used entry on overflow.

    Args:
        max_size: Maximum number of live keys.
        is_expired: Predicate ``(value, now) -> bool`` evaluated lazily on
            access and during sweeps.
        cleanup_interval: Seconds between background sweeps.
        name: Label used in logs.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        max_size: int,
        *,
        is_expired: Optional[Callable[[V, float], bool]] = None,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        name: str = "bounded_map",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.name = name
        self._is_expired = is_expired
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._entries: Dict[str, _Slot] = {}
        self._evictions = 0
        self._cleanups = 0
        self._last_cleanup: float = clock()
        self._sweeper: Optional[asyncio.Task] = None

    def _expired(self, value: V, now: float) -> bool:
        return self._is_expired is not None and self._is_expired(value, now)

    def get(self, key: str) -> Optional[V]:
        slot = self._entries.get(key)
        if slot is None:
            return None
        now = self._clock()
        if self._expired(slot.value, now):
            del self._entries[key]
            return None
        slot.last_access = now
        return slot.value

    def set(self, key: str, value: V) -> None:
        now = self._clock()
        slot = self._entries.get(key)
        if slot is not None:
            slot.value = value
            slot.last_access = now
            return
        if len(self._entries) >= self.max_size:
            self._evict_lru()
        self._entries[key] = _Slot(value=value, last_access=now)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries.keys()))

    def items(self) -> Iterator[Tuple[str, V]]:
        return iter([(key, slot.value) for key, slot in self._entries.items()])

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k].last_access)
        del self._entries[oldest_key]
        self._evictions += 1
        logger.debug(
            "LRU eviction",
            extra={"map": self.name, "key": oldest_key, "size": len(self._entries)},
        )

    def force_cleanup(self) -> int:
        """Remove every expired entry now and return how many were dropped."""
        now = self._clock()
        expired = [
            key
            for key, slot in self._entries.items()
            if self._expired(slot.value, now)
        ]
        for key in expired:
            del self._entries[key]
        self._cleanups += 1
        self._last_cleanup = now
        if expired:
            logger.debug(
                "Expired entries swept",
                extra={"map": self.name, "removed": len(expired)},
            )
        return len(expired)

    def start(self) -> None:
        """Launch the periodic sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        logger.info(
            "Cleanup sweep started",
            extra={"map": self.name, "interval": self._cleanup_interval},
        )

    async def stop(self) -> None:
        """Cancel the periodic sweep if it is running."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Cleanup sweep stopped", extra={"map": self.name})

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            self.force_cleanup()

    def stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "size": len(self._entries),
            "max_size": self.max_size,
            "evictions": self._evictions,
            "cleanups": self._cleanups,
            "last_cleanup": self._last_cleanup,
        }


def create_rate_limit_map(
    name: str,
    max_size: int = 10000,
    *,
    clock: Callable[[], float] = time.time,
) -> BoundedMap[RateLimitEntry]:
    """Build a registry whose entries expire once their window has reset."""
    return BoundedMap(
        max_size,
        is_expired=lambda entry, now: entry.reset_at < now,
        name=name,
        clock=clock,
    )


__all__ = ["BoundedMap", "RateLimitEntry", "create_rate_limit_map"]
