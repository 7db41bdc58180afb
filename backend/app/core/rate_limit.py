"""
Sliding-window rate limiting keyed by client address.

Each limiter is a FastAPI dependency scoped to a route class. Hits are recorded
in a counter store: process-local memory by default, or Redis sorted sets when
several API instances must share counts. A failing store admits the request.
"""
import logging
import threading
import time
import uuid
from collections import deque
from typing import Callable, Dict, NamedTuple, Optional

import redis
from fastapi import HTTPException, Request, Response, status

from app.core.config import settings

logger = logging.getLogger(__name__)


class HitResult(NamedTuple):
    allowed: bool
    count: int
    reset_after: float  # Seconds until the oldest counted hit leaves the window


class CounterStore:
    """Admission-check contract shared by all counter backends."""

    def hit(self, key: str, limit: int, window: float, now: float) -> HitResult:
        raise NotImplementedError

    def reset(self) -> None:
        raise NotImplementedError


class MemoryCounterStore(CounterStore):
    """Per-process sliding log of hit timestamps."""

    sweep_interval = 60.0

    def __init__(self):
        self._hits: Dict[str, deque] = {}
        self._windows: Dict[str, float] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window: float, now: float) -> HitResult:
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            hits = self._hits.setdefault(key, deque())
            self._windows[key] = window
            while hits and hits[0] <= now - window:
                hits.popleft()
            if len(hits) >= limit:
                return HitResult(False, len(hits), hits[0] + window - now)
            hits.append(now)
            return HitResult(True, len(hits), hits[0] + window - now)

    def _sweep(self, now: float) -> None:
        """Drop keys whose every hit has left its window. Caller holds the lock."""
        stale = [
            key for key, hits in self._hits.items()
            if not hits or hits[-1] <= now - self._windows[key]
        ]
        for key in stale:
            del self._hits[key]
            del self._windows[key]
        self._next_sweep = now + self.sweep_interval

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._windows.clear()
            self._next_sweep = 0.0


class RedisCounterStore(CounterStore):
    """Sliding log kept in a Redis sorted set per key."""

    def __init__(self, client: "redis.Redis", prefix: str = "ratelimit:"):
        self.client = client
        self.prefix = prefix

    def hit(self, key: str, limit: int, window: float, now: float) -> HitResult:
        redis_key = f"{self.prefix}{key}"
        member = f"{now}:{uuid.uuid4().hex}"
        pipe = self.client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - window)
        pipe.zadd(redis_key, {member: now})
        pipe.zcard(redis_key)
        pipe.zrange(redis_key, 0, 0, withscores=True)
        pipe.expire(redis_key, int(window) + 1)
        _, _, count, oldest, _ = pipe.execute()
        oldest_ts = oldest[0][1] if oldest else now
        if count > limit:
            self.client.zrem(redis_key, member)
            return HitResult(False, count - 1, oldest_ts + window - now)
        return HitResult(True, count, oldest_ts + window - now)

    def reset(self) -> None:
        for key in self.client.scan_iter(match=f"{self.prefix}*"):
            self.client.delete(key)


_store: Optional[CounterStore] = None


def get_counter_store() -> CounterStore:
    global _store
    if _store is None:
        if settings.RATE_LIMIT_BACKEND.lower() == "redis":
            client = redis.Redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
            )
            _store = RedisCounterStore(client)
        else:
            _store = MemoryCounterStore()
    return _store


def set_counter_store(store: CounterStore) -> None:
    global _store
    _store = store


def client_address(request: Request) -> str:
    """Address the limit is keyed on."""
    if settings.TRUST_PROXY:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimiter:
    """A named limit of `limit` requests per `window` seconds per client."""

    def __init__(
        self,
        name: str,
        limit: int,
        window: float,
        message: str,
        store: Optional[CounterStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.limit = limit
        self.window = window
        self.message = message
        self._store = store
        self._clock = clock

    @property
    def store(self) -> CounterStore:
        return self._store or get_counter_store()

    def check(self, client: str) -> HitResult:
        return self.store.hit(f"{self.name}:{client}", self.limit, self.window, self._clock())

    async def __call__(self, request: Request, response: Response):
        if not settings.rate_limit_active:
            return
        client = client_address(request)
        try:
            result = self.check(client)
        except redis.RedisError as e:
            logger.error(f"Rate limiter '{self.name}' store error, admitting request: {e}")
            return

        reset_after = max(0, int(result.reset_after + 0.999))
        if not result.allowed:
            logger.warning(f"Rate limit '{self.name}' exceeded for {client}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=self.message,
                headers={
                    "Retry-After": str(reset_after),
                    "RateLimit-Limit": str(self.limit),
                    "RateLimit-Remaining": "0",
                    "RateLimit-Reset": str(reset_after),
                }
            )

        response.headers["RateLimit-Limit"] = str(self.limit)
        response.headers["RateLimit-Remaining"] = str(max(0, self.limit - result.count))
        response.headers["RateLimit-Reset"] = str(reset_after)


# Auth endpoints: 5 requests per 15 minutes
auth_limiter = RateLimiter(
    "auth", 5, 15 * 60,
    "Too many authentication attempts, please try again later"
)

# Transaction endpoints: 100 requests per hour
transaction_limiter = RateLimiter(
    "transactions", 100, 60 * 60,
    "Too many transaction requests, please try again later"
)

# Analytics endpoints: 50 requests per hour
analytics_limiter = RateLimiter(
    "analytics", 50, 60 * 60,
    "Too many analytics requests, please try again later"
)

# Every /api route: 1000 requests per hour
general_limiter = RateLimiter(
    "general", 1000, 60 * 60,
    "Too many requests, please try again later"
)
