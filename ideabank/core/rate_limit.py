"""
Rate limiting module for per-user request throttling.
Fixed-window counters held in a bounded in-process registry.
Default: 20 suggestion requests per user per 60 seconds.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from ideabank.config import (
    RATE_LIMIT_MAX_KEYS,
    SUGGEST_RATE_LIMIT_MAX,
    SUGGEST_RATE_LIMIT_WINDOW_SECONDS,
    logger,
)
from ideabank.core.memory import BoundedMap, RateLimitEntry, create_rate_limit_map


class FixedWindowRateLimiter:
    """
    Counts requests per key inside fixed windows.

    The first request for a key opens a window of ``window_seconds``. Requests
    are allowed until ``max_requests`` have been counted; after that every
    request is denied until the window resets.
    """

    def __init__(
        self,
        *,
        max_requests: int = SUGGEST_RATE_LIMIT_MAX,
        window_seconds: float = SUGGEST_RATE_LIMIT_WINDOW_SECONDS,
        registry: Optional[BoundedMap[RateLimitEntry]] = None,
        name: str = "rate_limit",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self.registry = registry or create_rate_limit_map(
            name, RATE_LIMIT_MAX_KEYS, clock=clock
        )

    def check(self, key: str) -> Dict[str, Any]:
        """
        Count a request for ``key`` and report whether it is allowed.

        Args:
            key: Identifier to throttle (usually the user id)

        Returns:
            Dict containing:
                - allowed: bool - Whether the request is allowed
                - remaining: int - Requests left in the current window
                - reset_at: str - ISO timestamp when the window resets
                - total: int - Requests counted in the current window
                - limit: int - Configured maximum per window
        """
        now = self._clock()
        entry = self.registry.get(key)

        if entry is None or entry.reset_at < now:
            entry = RateLimitEntry(count=1, reset_at=now + self.window_seconds)
            self.registry.set(key, entry)
            allowed = True
        elif entry.count >= self.max_requests:
            allowed = False
        else:
            entry.count += 1
            allowed = True

        status = self._status(entry, allowed)

        logger.info(
            "Rate limit check",
            extra={
                "limiter": self.name,
                "key": key,
                "total": entry.count,
                "limit": self.max_requests,
                "allowed": allowed,
                "remaining": status["remaining"],
            },
        )
        return status

    def status(self, key: str) -> Dict[str, Any]:
        """Report the current window for ``key`` without counting a request."""
        entry = self.registry.get(key)
        if entry is None or entry.reset_at < self._clock():
            return {
                "allowed": True,
                "remaining": self.max_requests,
                "reset_at": None,
                "total": 0,
                "limit": self.max_requests,
            }
        return self._status(entry, entry.count < self.max_requests)

    def reset(self, key: str) -> None:
        self.registry.delete(key)

    def _status(self, entry: RateLimitEntry, allowed: bool) -> Dict[str, Any]:
        return {
            "allowed": allowed,
            "remaining": max(0, self.max_requests - entry.count),
            "reset_at": datetime.fromtimestamp(entry.reset_at, tz=timezone.utc).isoformat(),
            "total": entry.count,
            "limit": self.max_requests,
        }


__all__ = ["FixedWindowRateLimiter"]
