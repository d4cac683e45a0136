"""
Two-tier response cache.

The fast tier is an in-process ``BoundedMap``; the durable tier is the
Supabase ``response_cache`` table. Reads are validated against a content
fingerprint and every I/O failure degrades to a miss (reads) or a skipped
write, so the cache can never fail a request.
"""

from __future__ import annotations

import asyncio
import fnmatch
import hashlib
import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, Set

from supabase import Client

from ideabank.config import CACHE_MAX_ENTRIES, logger
from ideabank.core.contracts import CacheBackend
from ideabank.core.memory import BoundedMap
from ideabank.db import get_supabase_client

VISION_ANALYSIS_TTL = 7 * 24 * 60 * 60
IDEA_SUGGESTIONS_TTL = 60 * 60
PRODUCT_KNOWLEDGE_TTL = 24 * 60 * 60

TIME_BUCKET_SECONDS = 5 * 60
CACHE_SCHEME_VERSION = "v1"


@dataclass(slots=True)
class CacheRecord:
    value: Any
    expires_at: float
    fingerprint: Optional[str] = None

    def expired(self, now: float) -> bool:
        return self.expires_at <= now


# -------------------------
# Key builders
# -------------------------
def time_bucket(now: float, granularity: int = TIME_BUCKET_SECONDS) -> int:
    """Index of the fixed-width time bucket containing ``now``."""
    return int(now // granularity)


def _joined_ids(product_ids: Iterable[str]) -> str:
    return ",".join(sorted(product_ids))


def ideas_key(user_id: str, product_ids: Iterable[str], now: float) -> str:
    return f"ideas:{user_id}:{_joined_ids(product_ids)}:{time_bucket(now)}"


def vision_key(product_id: str, image_hash: str) -> str:
    return f"vision:{product_id}:{image_hash}"


def kb_key(product_id: str) -> str:
    return f"kb:{product_id}:{CACHE_SCHEME_VERSION}"


def suggestion_cache_key(
    user_id: str,
    product_ids: Iterable[str],
    now: float,
    *,
    user_goal: Optional[str] = None,
    template_id: Optional[str] = None,
) -> str:
    """Time-bucketed key for a suggestion response."""
    key = ideas_key(user_id, product_ids, now)
    if user_goal:
        key += "-g" + re.sub(r"[^a-zA-Z0-9]", "", user_goal[:20])
    if template_id:
        key += f"-t{template_id}"
    return key


def ideas_invalidation_pattern(
    user_id: str, product_ids: Optional[Iterable[str]] = None
) -> str:
    if product_ids:
        return f"ideas:{user_id}:{_joined_ids(product_ids)}:*"
    return f"ideas:{user_id}:*"


def content_fingerprint(*parts: Any) -> str:
    """Stable short digest of the inputs a cached value was derived from."""
    payload = json.dumps([CACHE_SCHEME_VERSION, *parts], sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:32]


_FRACTION = re.compile(r"\.(\d+)")
_SHORT_OFFSET = re.compile(r"(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)([+-]\d{2})$")


def parse_timestamp(value: str) -> float:
    """Epoch seconds for a Postgres ``timestamptz`` string.

    Accepts any number of fractional digits and ``Z`` or ``+HH`` offsets,
    which ``datetime.fromisoformat`` rejects before Python 3.11.
    """
    text = value.strip().replace(" ", "T", 1).replace("Z", "+00:00")
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    text = _SHORT_OFFSET.sub(r"\1\2:00", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def like_pattern(pattern: str) -> str:
    """Translate a ``*`` glob into a SQL LIKE pattern with literal ``%`` and ``_``."""
    escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("*", "%")


# -------------------------
# Backends
# -------------------------
class MemoryCacheBackend:
    """Fast tier backed by a bounded LRU map."""

    def __init__(
        self,
        max_size: int = CACHE_MAX_ENTRIES,
        *,
        name: str = "response_cache_fast",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self.entries: BoundedMap[CacheRecord] = BoundedMap(
            max_size,
            is_expired=lambda record, now: record.expired(now),
            name=name,
            clock=clock,
        )

    async def get(self, key: str) -> Optional[CacheRecord]:
        return self.entries.get(key)

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float,
        fingerprint: Optional[str] = None,
    ) -> None:
        self.entries.set(
            key,
            CacheRecord(
                value=value,
                expires_at=self._clock() + ttl_seconds,
                fingerprint=fingerprint,
            ),
        )

    async def invalidate(self, pattern: str) -> int:
        matched = [key for key in self.entries.keys() if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            self.entries.delete(key)
        return len(matched)

    def start(self) -> None:
        self.entries.start()

    async def stop(self) -> None:
        await self.entries.stop()


class SupabaseCacheBackend:
    """Durable tier stored in the ``response_cache`` table."""

    def __init__(
        self,
        client: Optional[Client] = None,
        *,
        table: str = "response_cache",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._supabase = client
        self.table = table
        self._clock = clock

    def _client(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase_client()
        return self._supabase

    async def get(self, key: str) -> Optional[CacheRecord]:
        response = (
            self._client()
            .table(self.table)
            .select("key, value, fingerprint, expires_at")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None

        row = response.data[0]
        expires_at = parse_timestamp(row["expires_at"])
        record = CacheRecord(
            value=row.get("value"),
            expires_at=expires_at,
            fingerprint=row.get("fingerprint"),
        )
        return None if record.expired(self._clock()) else record

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float,
        fingerprint: Optional[str] = None,
    ) -> None:
        expires_at = datetime.fromtimestamp(self._clock() + ttl_seconds, tz=timezone.utc)
        (
            self._client()
            .table(self.table)
            .upsert(
                {
                    "key": key,
                    "value": value,
                    "fingerprint": fingerprint,
                    "expires_at": expires_at.isoformat(),
                },
                on_conflict="key",
            )
            .execute()
        )

    async def invalidate(self, pattern: str) -> int:
        response = (
            self._client()
            .table(self.table)
            .delete()
            .like("key", like_pattern(pattern))
            .execute()
        )
        return len(response.data or [])


# -------------------------
# Cache facade
# -------------------------
class ResponseCache:
    """
    Fingerprint-validated reads across a fast and an optional durable tier.

    A durable hit is copied back into the fast tier by a background task;
    ``flush_pending()`` awaits any outstanding copies.
    """

    def __init__(
        self,
        fast: Optional[CacheBackend] = None,
        durable: Optional[CacheBackend] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self.fast = fast if fast is not None else MemoryCacheBackend(clock=clock)
        self.durable = durable
        self._pending: Set[asyncio.Task] = set()

    async def lookup(self, key: str, fingerprint: Optional[str] = None) -> Optional[Any]:
        """Return the cached value for ``key`` or None on any kind of miss."""
        record = await self._read(self.fast, key, "fast")
        if record is not None and self._accept(record, key, fingerprint, "fast"):
            logger.debug("Cache hit", extra={"key": key, "tier": "fast"})
            return record.value

        if self.durable is None:
            return None

        record = await self._read(self.durable, key, "durable")
        if record is None or not self._accept(record, key, fingerprint, "durable"):
            return None

        logger.debug("Cache hit", extra={"key": key, "tier": "durable"})
        self._schedule_backfill(key, record)
        return record.value

    async def store(
        self,
        key: str,
        value: Any,
        ttl_seconds: float,
        fingerprint: Optional[str] = None,
    ) -> None:
        """Write ``value`` to every tier; failures are logged and skipped."""
        tiers = [("fast", self.fast)]
        if self.durable is not None:
            tiers.append(("durable", self.durable))
        for tier, backend in tiers:
            try:
                await backend.set(key, value, ttl_seconds, fingerprint)
            except Exception as exc:
                logger.warning(
                    "Cache write skipped",
                    extra={"key": key, "tier": tier, "error": str(exc)},
                )

    async def invalidate(self, pattern: str) -> int:
        removed = 0
        tiers = [("fast", self.fast)]
        if self.durable is not None:
            tiers.append(("durable", self.durable))
        for tier, backend in tiers:
            try:
                removed += await backend.invalidate(pattern)
            except Exception as exc:
                logger.warning(
                    "Cache invalidation failed",
                    extra={"pattern": pattern, "tier": tier, "error": str(exc)},
                )
        logger.info("Cache invalidated", extra={"pattern": pattern, "removed": removed})
        return removed

    async def wrap(
        self,
        key: str,
        ttl_seconds: float,
        compute: Callable[[], Awaitable[Any]],
        fingerprint: Optional[str] = None,
    ) -> Any:
        """Return the cached value or compute, store and return a fresh one."""
        cached = await self.lookup(key, fingerprint)
        if cached is not None:
            return cached
        value = await compute()
        await self.store(key, value, ttl_seconds, fingerprint)
        return value

    async def flush_pending(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def start(self) -> None:
        starter = getattr(self.fast, "start", None)
        if starter is not None:
            starter()

    async def stop(self) -> None:
        await self.flush_pending()
        stopper = getattr(self.fast, "stop", None)
        if stopper is not None:
            await stopper()

    async def _read(
        self, backend: CacheBackend, key: str, tier: str
    ) -> Optional[CacheRecord]:
        try:
            return await backend.get(key)
        except Exception as exc:
            logger.warning(
                "Cache read failed, treating as miss",
                extra={"key": key, "tier": tier, "error": str(exc)},
            )
            return None

    def _accept(
        self,
        record: CacheRecord,
        key: str,
        fingerprint: Optional[str],
        tier: str,
    ) -> bool:
        if record.expired(self._clock()):
            return False
        if fingerprint is not None and record.fingerprint != fingerprint:
            logger.info(
                "Cache fingerprint mismatch",
                extra={"key": key, "tier": tier},
            )
            return False
        return True

    def _schedule_backfill(self, key: str, record: CacheRecord) -> None:
        task = asyncio.get_running_loop().create_task(self._backfill(key, record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _backfill(self, key: str, record: CacheRecord) -> None:
        remaining = record.expires_at - self._clock()
        if remaining <= 0:
            return
        try:
            await self.fast.set(key, record.value, remaining, record.fingerprint)
        except Exception as exc:
            logger.warning(
                "Cache backfill failed",
                extra={"key": key, "error": str(exc)},
            )


__all__ = [
    "CacheRecord",
    "MemoryCacheBackend",
    "ResponseCache",
    "SupabaseCacheBackend",
    "content_fingerprint",
    "ideas_invalidation_pattern",
    "ideas_key",
    "kb_key",
    "like_pattern",
    "parse_timestamp",
    "suggestion_cache_key",
    "time_bucket",
    "vision_key",
    "IDEA_SUGGESTIONS_TTL",
    "PRODUCT_KNOWLEDGE_TTL",
    "VISION_ANALYSIS_TTL",
]
