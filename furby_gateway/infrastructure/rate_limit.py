"""Sliding-window rate limiting for money-moving actions"""

import logging
import math
import threading
import time
import uuid
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional, Protocol

import redis
from redis.exceptions import RedisError

from furby_gateway.config import settings
from furby_gateway.domain.exceptions import RateLimitExceeded


class RateStore(Protocol):
    def hit(self, key: str, limit: int, window_seconds: int) -> Optional[int]:
        """Record a hit; return None when allowed, else seconds until the next slot frees"""
        ...


class InMemoryRateStore:
    """Per-process sliding window, one deque of hit timestamps per key"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._max_window = 0
        self._last_purge = clock()

    def hit(self, key: str, limit: int, window_seconds: int) -> Optional[int]:
        now = self.clock()
        with self._lock:
            self._max_window = max(self._max_window, window_seconds)
            if now - self._last_purge >= self._max_window:
                self._purge(now)

            hits = self._hits[key]
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return max(1, math.ceil(hits[0] + window_seconds - now))
            hits.append(now)
            return None

    def _purge(self, now: float) -> None:
        """Drop keys whose newest hit has left the widest window in use"""
        horizon = now - self._max_window
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= horizon]:
            del self._hits[key]
        self._last_purge = now


# Trim, check and record atomically. Returns -1 when the hit is recorded,
# else the seconds to wait.
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
if redis.call('ZCARD', key) >= limit then
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    local oldest_score = tonumber(oldest[2] or now)
    return math.max(1, math.ceil(oldest_score + window - now))
end

redis.call('ZADD', key, now, ARGV[4])
redis.call('EXPIRE', key, window)
return -1
"""


class RedisRateStore:
    """
    Sliding window shared across processes: one sorted set per key, scored by
    hit time. Redis failures degrade to allowing the request.
    """

    def __init__(self, client: redis.Redis, prefix: str = "furby:rate:"):
        self.client = client
        self.prefix = prefix

    def hit(self, key: str, limit: int, window_seconds: int) -> Optional[int]:
        redis_key = f"{self.prefix}{key}"
        now = time.time()
        try:
            result = self.client.eval(
                _SLIDING_WINDOW_LUA,
                1,
                redis_key,
                now,
                window_seconds,
                limit,
                f"{now}:{uuid.uuid4().hex[:8]}",
            )
        except RedisError as e:
            logging.warning(
                f"Redis error in rate limiter, allowing request: {e}",
                extra={"rate_key": key},
            )
            return None

        retry_after = int(result)
        return None if retry_after < 0 else retry_after


class RateLimiter:
    """Rejects the (limit + 1)-th hit of a key inside its window"""

    def __init__(self, store: RateStore):
        self.store = store

    def hit(self, key: str, limit: int, window_seconds: int) -> None:
        """
        Raises:
            RateLimitExceeded: With the number of seconds to wait
        """
        retry_after = self.store.hit(key, limit, window_seconds)
        if retry_after is not None:
            logging.warning("Rate limit exceeded", extra={"rate_key": key, "retry_after": retry_after})
            raise RateLimitExceeded(key, retry_after)


def rate_key(action: str, user_id) -> str:
    return f"{action}:{user_id}"


def build_rate_limiter() -> RateLimiter:
    """Rate limiter backed by the store named in ``rate_limit_backend``"""
    if settings.rate_limit_backend == "redis":
        return RateLimiter(RedisRateStore(redis.Redis.from_url(settings.redis_url)))
    return RateLimiter(InMemoryRateStore())
