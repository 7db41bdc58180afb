"""
Response cache for expensive read endpoints.

Entries are JSON response envelopes stored under namespaced keys:

    transactions:{user_id}:{query}     transaction list pages        5 min
    analytics:{user_id}:{name}:{query} analytics endpoints           15 min
    user_analytics:{user_id}:{query}   per-user transaction summary  15 min
    categories:all[:{query}]           category list                 1 hour

Writes invalidate whole namespaces by key prefix. The cache is never a source
of truth: every backend failure is logged and treated as a miss.
"""
import fnmatch
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

ANALYTICS_TTL = 15 * 60
TRANSACTIONS_TTL = 5 * 60
CATEGORIES_TTL = 60 * 60
USER_ANALYTICS_TTL = 15 * 60

CATEGORIES_KEY = "categories:all"


class CacheBackend:
    """Minimal key-value contract the cache layer relies on."""
    name = "base"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: int) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def delete_pattern(self, pattern: str) -> int:
        raise NotImplementedError


class NullCache(CacheBackend):
    """Always-miss backend used when no store is available."""
    name = "none"

    def get(self, key: str) -> Optional[str]:
        return None

    def set(self, key: str, value: str, ttl: int) -> bool:
        return False

    def delete(self, key: str) -> bool:
        return False

    def delete_pattern(self, pattern: str) -> int:
        return 0


class MemoryCache(CacheBackend):
    """Process-local TTL store. Expired entries are purged at most once a minute on write."""
    name = "memory"
    purge_interval = 60.0

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, tuple] = {}
        self._next_purge = 0.0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> bool:
        with self._lock:
            now = self._clock()
            if now >= self._next_purge:
                self._purge_expired(now)
            self._data[key] = (now + ttl, value)
        return True

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        self._next_purge = now + self.purge_interval

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                del self._data[key]
        return len(keys)

    def keys(self):
        with self._lock:
            return list(self._data)

    def clear(self):
        with self._lock:
            self._data.clear()


class RedisCache(CacheBackend):
    """Redis-backed store shared between API instances."""
    name = "redis"

    def __init__(self, client: "redis.Redis"):
        self.client = client

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: str, ttl: int) -> bool:
        try:
            self.client.setex(key, ttl, value)
            return True
        except redis.RedisError as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(key))
        except redis.RedisError as e:
            logger.warning(f"Cache delete error for {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        try:
            keys = list(self.client.scan_iter(match=pattern, count=500))
            if keys:
                return self.client.delete(*keys)
            return 0
        except redis.RedisError as e:
            logger.warning(f"Cache pattern delete error for {pattern}: {e}")
            return 0


_backend: Optional[CacheBackend] = None


def create_backend(kind: str) -> CacheBackend:
    """Build the configured backend, degrading to NullCache if Redis is unreachable."""
    kind = (kind or "none").lower()
    if kind == "memory":
        return MemoryCache()
    if kind == "redis":
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
        try:
            client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable at {settings.REDIS_URL} ({e}); continuing without cache")
            return NullCache()
        logger.info("Connected to Redis cache")
        return RedisCache(client)
    return NullCache()


def init_cache(kind: Optional[str] = None) -> CacheBackend:
    global _backend
    _backend = create_backend(kind or settings.CACHE_BACKEND)
    logger.info(f"Cache backend: {_backend.name}")
    return _backend


def get_cache() -> CacheBackend:
    if _backend is None:
        return init_cache()
    return _backend


def set_cache_backend(backend: CacheBackend) -> None:
    global _backend
    _backend = backend


# Key generators

def _query_string(params: Dict[str, Any]) -> str:
    """Deterministic encoding of query parameters; None becomes 'all'."""
    normalized = []
    for name in sorted(params):
        value = params[name]
        if value is None or value == "":
            value = "all"
        elif hasattr(value, "value"):
            value = value.value
        normalized.append((name, str(value)))
    return urlencode(normalized)


def transactions_key(user_id: int, **params: Any) -> str:
    return f"transactions:{user_id}:{_query_string(params)}"


def analytics_key(user_id: int, name: str, **params: Any) -> str:
    return f"analytics:{user_id}:{name}:{_query_string(params)}"


def user_analytics_key(user_id: int, name: str, **params: Any) -> str:
    return f"user_analytics:{user_id}:{name}:{_query_string(params)}"


def categories_key(**params: Any) -> str:
    if all(v is None for v in params.values()):
        return CATEGORIES_KEY
    return f"{CATEGORIES_KEY}:{_query_string(params)}"


# Read-through

def get_cached(key: str) -> Optional[Dict[str, Any]]:
    raw = get_cache().get(key)
    if raw is None:
        logger.debug(f"Cache miss for key: {key}")
        return None
    try:
        payload = json.loads(raw)
    except ValueError:
        logger.warning(f"Discarding unreadable cache entry: {key}")
        return None
    logger.debug(f"Cache hit for key: {key}")
    return payload


def store(key: str, payload: Dict[str, Any], ttl: int) -> bool:
    """Store a response envelope; only logically successful responses are kept."""
    if not isinstance(payload, dict) or payload.get("success") is not True:
        return False
    try:
        raw = json.dumps(payload)
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to serialize payload for {key}: {e}")
        return False
    return get_cache().set(key, raw, ttl)


def read_through(key: str, ttl: int, producer: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    """Return the cached envelope for key, or build it with producer and cache it."""
    cached = get_cached(key)
    if cached is not None:
        return cached
    payload = producer()
    store(key, payload, ttl)
    return payload


# Invalidation

def invalidate_user_cache(user_id: int) -> None:
    """Drop every cached read derived from one user's transactions."""
    backend = get_cache()
    removed = backend.delete_pattern(f"analytics:{user_id}:*")
    removed += backend.delete_pattern(f"transactions:{user_id}:*")
    removed += backend.delete_pattern(f"user_analytics:{user_id}:*")
    logger.info(f"Invalidated cache for user {user_id} ({removed} keys)")


def invalidate_categories_cache() -> None:
    backend = get_cache()
    backend.delete(CATEGORIES_KEY)
    backend.delete_pattern(f"{CATEGORIES_KEY}:*")
    logger.info("Invalidated categories cache")


def invalidate_all_user_caches() -> None:
    backend = get_cache()
    for pattern in ("analytics:*", "transactions:*", "user_analytics:*"):
        backend.delete_pattern(pattern)
    logger.info("Invalidated all user caches")
