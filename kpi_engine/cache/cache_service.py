"""Cache-aside layer.

Generic get / set / delete / get_or_set over a ``CacheStore`` plus typed
helpers for analytics reports, dashboards and per-user summaries.  Stored
values are JSON envelopes ``{"payload", "created_at", "ttl"}``; an entry read
at or after ``created_at + ttl`` is deleted and reported as a miss.

get_or_set has no single-flight: two callers missing the same key at the
same time both compute and both write, last write wins.  Recomputation is
deterministic for the same inputs, so this only costs time.

Invalidation is explicit and key based.  Typed helpers register every key
they write in the per-user set ``index:{user_id}`` so that
``invalidate_user_cache`` can find them without a key scan.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional, Union

from kpi_engine.cache.store import CacheStore
from kpi_engine.config.settings import (
    ANALYTICS_CACHE_TTL,
    CACHE_DEFAULT_TTL,
    CACHE_PREFIX,
    DASHBOARD_CACHE_TTL,
    USER_AGGREGATE_CACHE_TTL,
)

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str]

YEAR = "year"
MONTH = "month"
HEALTH_PROBE_KEY = "health:probe"


@dataclass
class CacheResult:
    data: Any
    hit: bool
    key: str

    @property
    def status(self) -> str:
        return "HIT" if self.hit else "MISS"


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    writes: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "hit_rate": round(self.hit_rate, 4),
        }


def normalize_date(value: DateLike) -> date:
    """Reduce a date, datetime or ISO string to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


# ── Key builders ────────────────────────────────────────────────────────


def analytics_key(user_id: str, report_type: str, start: DateLike, end: DateLike) -> str:
    return (
        f"analytics:{user_id}:{report_type}:"
        f"{normalize_date(start).isoformat()}:{normalize_date(end).isoformat()}"
    )


def dashboard_key(user_id: str, granularity: str, year: int, month: Optional[int] = None) -> str:
    if granularity == YEAR:
        return f"dashboard:{user_id}:{YEAR}:{year}"
    if granularity == MONTH:
        if month is None:
            raise ValueError("Month dashboard key needs a month")
        return f"dashboard:{user_id}:{MONTH}:{year}:{month:02d}"
    raise ValueError(f"Unknown dashboard granularity: {granularity!r}")


def user_summary_key(user_id: str, as_of: DateLike) -> str:
    return f"summary:{user_id}:{normalize_date(as_of).isoformat()}"


def user_index_key(user_id: str) -> str:
    return f"index:{user_id}"


def _analytics_range(key: str) -> Optional[tuple[date, date]]:
    # analytics:{user}:{type}:{start}:{end}
    parts = key.split(":")
    if len(parts) < 5 or parts[0] != "analytics":
        return None
    try:
        return date.fromisoformat(parts[-2]), date.fromisoformat(parts[-1])
    except ValueError:
        return None


def _summary_as_of(key: str) -> Optional[date]:
    # summary:{user}:{as_of}
    parts = key.split(":")
    if len(parts) < 3 or parts[0] != "summary":
        return None
    try:
        return date.fromisoformat(parts[-1])
    except ValueError:
        return None


class CacheService:
    def __init__(
        self,
        store: Optional[CacheStore] = None,
        prefix: str = CACHE_PREFIX,
        default_ttl: int = CACHE_DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or CacheStore(None)
        self.prefix = prefix
        self.default_ttl = default_ttl
        self._clock = clock
        self.stats = CacheStats()

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    # ── Primitives ──────────────────────────────────────────────────────

    def get(self, key: str) -> CacheResult:
        raw = self.store.get(self._full_key(key))
        if raw is None:
            self.stats.misses += 1
            return CacheResult(data=None, hit=False, key=key)

        try:
            envelope = json.loads(raw)
            payload = envelope["payload"]
            expires_at = float(envelope["created_at"]) + float(envelope["ttl"])
        except (ValueError, TypeError, KeyError):
            logger.warning("Dropping malformed cache entry %s", key)
            self.store.delete(self._full_key(key))
            self.stats.misses += 1
            return CacheResult(data=None, hit=False, key=key)

        if self._clock() >= expires_at:
            # Lazy eviction
            self.store.delete(self._full_key(key))
            self.stats.misses += 1
            return CacheResult(data=None, hit=False, key=key)

        self.stats.hits += 1
        return CacheResult(data=payload, hit=True, key=key)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"TTL must be positive, got {ttl}")
        envelope = json.dumps({"payload": value, "created_at": self._clock(), "ttl": ttl})
        stored = self.store.set(self._full_key(key), envelope, ttl)
        if stored:
            self.stats.writes += 1
        return stored

    def delete(self, key: str) -> bool:
        return self.store.delete(self._full_key(key)) > 0

    def exists(self, key: str) -> bool:
        if not self.store.exists(self._full_key(key)):
            return False
        return self.get(key).hit

    def get_or_set(self, key: str, compute_fn: Callable[[], Any], ttl: Optional[int] = None) -> CacheResult:
        """Return the cached value, or compute it once, store it and return it."""
        cached = self.get(key)
        if cached.hit:
            return cached
        value = compute_fn()
        self.set(key, value, ttl)
        return CacheResult(data=value, hit=False, key=key)

    # ── Typed helpers ───────────────────────────────────────────────────

    def _register(self, user_id: str, key: str, ttl: int) -> None:
        self.store.add_members(self._full_key(user_index_key(user_id)), [key], ttl)

    def cache_analytics_report(
        self, user_id: str, report_type: str, start: DateLike, end: DateLike, report: Any,
    ) -> bool:
        key = analytics_key(user_id, report_type, start, end)
        stored = self.set(key, report, ANALYTICS_CACHE_TTL)
        if stored:
            self._register(user_id, key, ANALYTICS_CACHE_TTL)
        return stored

    def get_cached_analytics_report(
        self, user_id: str, report_type: str, start: DateLike, end: DateLike,
    ) -> CacheResult:
        return self.get(analytics_key(user_id, report_type, start, end))

    def cache_dashboard_data(
        self, user_id: str, granularity: str, year: int, month: Optional[int], data: Any,
    ) -> bool:
        key = dashboard_key(user_id, granularity, year, month)
        stored = self.set(key, data, DASHBOARD_CACHE_TTL)
        if stored:
            self._register(user_id, key, DASHBOARD_CACHE_TTL)
        return stored

    def get_cached_dashboard_data(
        self, user_id: str, granularity: str, year: int, month: Optional[int] = None,
    ) -> CacheResult:
        return self.get(dashboard_key(user_id, granularity, year, month))

    def cache_user_summary(self, user_id: str, as_of: DateLike, summary: Any) -> bool:
        key = user_summary_key(user_id, as_of)
        stored = self.set(key, summary, USER_AGGREGATE_CACHE_TTL)
        if stored:
            self._register(user_id, key, USER_AGGREGATE_CACHE_TTL)
        return stored

    def get_cached_user_summary(self, user_id: str, as_of: DateLike) -> CacheResult:
        return self.get(user_summary_key(user_id, as_of))

    # ── Invalidation ────────────────────────────────────────────────────

    def invalidate_keys(self, keys: Iterable[str]) -> int:
        full = [self._full_key(k) for k in keys]
        deleted = self.store.delete(*full)
        if deleted:
            logger.debug("Invalidated %d cache keys", deleted)
        return deleted

    def registered_keys(self, user_id: str) -> set[str]:
        return self.store.members(self._full_key(user_index_key(user_id)))

    def invalidate_user_cache(self, user_id: str, extra_keys: Iterable[str] = ()) -> int:
        """Drop every cached analytics/dashboard/summary entry of a user."""
        keys = {*self.registered_keys(user_id), *extra_keys}
        deleted = self.invalidate_keys(keys)
        self.store.delete(self._full_key(user_index_key(user_id)))
        logger.info("Invalidated %d cache entries for user %s", deleted, user_id)
        return deleted

    def invalidate_for_date(self, user_id: str, day: DateLike) -> int:
        """Drop the entries that depend on one day's record.

        The month and year dashboards holding the day, any registered
        analytics report whose range covers the day, and every registered
        user summary taken on or after the day.
        """
        day = normalize_date(day)
        keys = {
            dashboard_key(user_id, MONTH, day.year, day.month),
            dashboard_key(user_id, YEAR, day.year),
        }
        for key in self.registered_keys(user_id):
            bounds = _analytics_range(key)
            if bounds and bounds[0] <= day <= bounds[1]:
                keys.add(key)
            as_of = _summary_as_of(key)
            if as_of and as_of >= day:
                keys.add(key)
        return self.invalidate_keys(keys)

    # ── Health ──────────────────────────────────────────────────────────

    def health_check(self) -> dict:
        if not self.store.is_available:
            return {"status": "unavailable", "details": {"connected": False, **self.stats.to_dict()}}

        # Straight to the store so the probe does not count in the stats
        key = self._full_key(HEALTH_PROBE_KEY)
        probe = str(self._clock())
        written = self.store.set(key, probe, 10)
        healthy = written and self.store.get(key) == probe
        self.store.delete(key)
        return {
            "status": "healthy" if healthy else "degraded",
            "details": {"connected": True, "round_trip": healthy, **self.stats.to_dict()},
        }
