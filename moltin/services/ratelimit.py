"""
Sliding-window rate limiting per agent.

Storage: in-process memory by default (single instance); Redis sorted sets
under {prefix}:{identifier} when DB_REDIS_URL is configured.
"""

from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Deque, Dict, Optional
import logging
import math
import time
import uuid

import redis

from moltin.core.config import get_settings

logger = logging.getLogger(__name__)

HOUR = 60 * 60
DAY = 24 * HOUR


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: float  # epoch seconds when the oldest counted hit leaves the window
    now: float  # limiter clock reading when the hit was checked

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.reset - self.now))


class SlidingWindowRateLimiter:
    """Allow at most `limit` hits per identifier within any `window_seconds` span."""

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        prefix: str,
        redis_url: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_hits = limit
        self.window = window_seconds
        self.prefix = prefix
        self._clock = clock
        self._lock = Lock()
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()
        self._redis = redis.Redis.from_url(redis_url) if redis_url else None

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    def limit(self, identifier: str) -> RateLimitResult:
        """Record a hit for identifier if it fits in the window."""
        if self._redis is not None:
            return self._limit_redis(identifier)
        return self._limit_memory(identifier)

    def _sweep(self, now: float):
        """Drop identifiers whose newest hit has left the window. Caller holds the lock."""
        cutoff = now - self.window
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now

    def _limit_memory(self, identifier: str) -> RateLimitResult:
        now = self._clock()
        key = self._key(identifier)

        with self._lock:
            if now - self._last_sweep >= self.window:
                self._sweep(now)

            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - self.window:
                hits.popleft()

            if len(hits) >= self.max_hits:
                return RateLimitResult(False, self.max_hits, 0, hits[0] + self.window, now)

            hits.append(now)
            return RateLimitResult(True, self.max_hits, self.max_hits - len(hits), hits[0] + self.window, now)

    def _limit_redis(self, identifier: str) -> RateLimitResult:
        now = self._clock()
        key = self._key(identifier)
        member = f"{now}:{uuid.uuid4().hex}"

        # Add and count in one MULTI; an over-limit add is removed again below.
        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(key, 0, now - self.window)
        pipe.zadd(key, {member: now})
        pipe.zcard(key)
        pipe.zrange(key, 0, 0, withscores=True)
        pipe.expire(key, int(self.window))
        _, _, count, oldest, _ = pipe.execute()

        oldest_ts = oldest[0][1] if oldest else now
        if count > self.max_hits:
            self._redis.zrem(key, member)
            return RateLimitResult(False, self.max_hits, 0, oldest_ts + self.window, now)

        return RateLimitResult(True, self.max_hits, self.max_hits - count, oldest_ts + self.window, now)

    def reset(self, identifier: Optional[str] = None):
        """Forget recorded hits for one identifier, or all of them."""
        if self._redis is not None:
            if identifier is not None:
                self._redis.delete(self._key(identifier))
            else:
                for key in self._redis.scan_iter(match=f"{self.prefix}:*"):
                    self._redis.delete(key)
            return
        with self._lock:
            if identifier is None:
                self._hits.clear()
            else:
                self._hits.pop(self._key(identifier), None)


# ============================================================================
# Presets
# ============================================================================

_limiters: Dict[str, SlidingWindowRateLimiter] = {}
_limiters_lock = Lock()


def _get_limiter(name: str, limit: int, window: int) -> SlidingWindowRateLimiter:
    with _limiters_lock:
        limiter = _limiters.get(name)
        if limiter is None:
            redis_url = get_settings().database.redis_url
            limiter = SlidingWindowRateLimiter(limit, window, f"ratelimit:{name}", redis_url=redis_url)
            _limiters[name] = limiter
            logger.info(f"Rate limiter '{name}': {limit} per {window}s ({'redis' if redis_url else 'memory'})")
        return limiter


def get_job_post_limiter() -> SlidingWindowRateLimiter:
    """10 job posts per hour per agent (configurable)."""
    return _get_limiter("jobs", get_settings().ratelimit.job_posts_per_hour, HOUR)


def get_application_limiter() -> SlidingWindowRateLimiter:
    """50 applications per day per agent (configurable)."""
    return _get_limiter("applications", get_settings().ratelimit.applications_per_day, DAY)


def reset_limiters():
    """Drop all preset limiters so the next call rebuilds them from settings."""
    with _limiters_lock:
        for limiter in _limiters.values():
            limiter.reset()
        _limiters.clear()
