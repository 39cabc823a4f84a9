"""Key-value store behind the cache-aside layer.

Every call is gated by ``is_available``.  A Redis error marks the store
unreachable and is logged at WARNING; callers get the same answer as a miss.
After ``retry_interval`` seconds the next call probes with PING.  With no
client configured the store is permanently unavailable, which makes the
cache an always-miss cache.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

import redis

from kpi_engine.config.settings import CACHE_RETRY_INTERVAL, REDIS_URL

logger = logging.getLogger(__name__)


class CacheStore:
    def __init__(
        self,
        r: redis.Redis | None,
        retry_interval: float = CACHE_RETRY_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.r = r
        self.retry_interval = retry_interval
        self._clock = clock
        self._down_since: Optional[float] = None

    @classmethod
    def from_url(cls, url: str = REDIS_URL, **kwargs) -> CacheStore:
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    @property
    def is_available(self) -> bool:
        if self.r is None:
            return False
        if self._down_since is None:
            return True
        if self._clock() - self._down_since < self.retry_interval:
            return False
        try:
            self.r.ping()
        except redis.RedisError as exc:
            self._mark_unavailable("ping", exc)
            return False
        logger.info("Cache store reachable again")
        self._down_since = None
        return True

    def _mark_unavailable(self, op: str, exc: Exception) -> None:
        logger.warning("Cache store %s failed, treating as miss: %s", op, exc)
        self._down_since = self._clock()

    # ── Operations ──────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[str]:
        if not self.is_available:
            return None
        try:
            return self.r.get(key)
        except redis.RedisError as exc:
            self._mark_unavailable("get", exc)
            return None

    def set(self, key: str, value: str, ttl: int) -> bool:
        if not self.is_available:
            return False
        try:
            return bool(self.r.set(key, value, ex=ttl))
        except redis.RedisError as exc:
            self._mark_unavailable("set", exc)
            return False

    def delete(self, *keys: str) -> int:
        if not keys or not self.is_available:
            return 0
        try:
            return int(self.r.delete(*keys))
        except redis.RedisError as exc:
            self._mark_unavailable("delete", exc)
            return 0

    def exists(self, key: str) -> bool:
        if not self.is_available:
            return False
        try:
            return bool(self.r.exists(key))
        except redis.RedisError as exc:
            self._mark_unavailable("exists", exc)
            return False

    def add_members(self, key: str, members: Iterable[str], ttl: int) -> bool:
        """Add to a set and extend its TTL to at least ``ttl``.

        The TTL is never shortened: the set must outlive every member it
        tracks.
        """
        members = list(members)
        if not members or not self.is_available:
            return False
        try:
            pipe = self.r.pipeline(transaction=False)
            pipe.sadd(key, *members)
            pipe.ttl(key)
            _, remaining = pipe.execute()
            if remaining is None or remaining < ttl:
                self.r.expire(key, ttl)
            return True
        except redis.RedisError as exc:
            self._mark_unavailable("sadd", exc)
            return False

    def members(self, key: str) -> set[str]:
        if not self.is_available:
            return set()
        try:
            return set(self.r.smembers(key))
        except redis.RedisError as exc:
            self._mark_unavailable("smembers", exc)
            return set()
