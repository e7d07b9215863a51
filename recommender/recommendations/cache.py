"""
Result caching for ranked recommendations.

Responsibilities:
- Canonicalize criteria so that semantically equal inputs share one key.
- Store and retrieve ranked result lists with a TTL.
- Keep serving (uncached) when the cache store is unavailable.
"""
from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from decimal import Decimal
from typing import Any, Callable, Mapping, Protocol

import redis
from pydantic import TypeAdapter, ValidationError

from ..errors import CacheBackendError
from .config import DEFAULT_RECOMMENDER_CONFIG, RecommenderConfig
from .models import Criteria, RankedEntry

logger = logging.getLogger(__name__)

_NULL = "__none__"
_RANKED_LIST = TypeAdapter(list[RankedEntry])


class CacheBackend(Protocol):
    name: str

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self, prefix: str) -> int: ...


class InMemoryCacheBackend:
    """
    Process-local TTL store.

    Expired entries are dropped on read, and swept whenever the store
    reaches ``max_entries``. If it is still full after the sweep, the
    oldest entry is evicted. There is no sweeper thread. Safe to share
    between threads.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time, max_entries: int = 10_000):
        self._clock = clock
        self.max_entries = max(1, max_entries)
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            self._entries.pop(key, None)
            if len(self._entries) >= self.max_entries:
                self._purge(now)
            self._entries[key] = (value, now + ttl)

    def _purge(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self, prefix: str = "") -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend:
    """Redis-backed store; values are serialized as JSON through a pydantic adapter."""

    name = "redis"

    def __init__(
        self,
        client: redis.Redis,
        adapter: TypeAdapter = _RANKED_LIST,
    ):
        self._redis = client
        self._adapter = adapter

    @classmethod
    def from_url(cls, url: str, adapter: TypeAdapter = _RANKED_LIST) -> "RedisCacheBackend":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, adapter)

    def get(self, key: str) -> Any | None:
        try:
            data = self._redis.get(key)
        except redis.RedisError as exc:
            raise CacheBackendError("redis get failed", {"key": key, "error": str(exc)}) from exc
        if data is None:
            return None
        try:
            return self._adapter.validate_json(data)
        except ValidationError as exc:
            raise CacheBackendError("redis payload is unreadable", {"key": key, "error": str(exc)}) from exc

    def set(self, key: str, value: Any, ttl: int) -> None:
        payload = self._adapter.dump_json(value)
        try:
            self._redis.setex(key, ttl, payload)
        except redis.RedisError as exc:
            raise CacheBackendError("redis set failed", {"key": key, "error": str(exc)}) from exc

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except redis.RedisError as exc:
            raise CacheBackendError("redis delete failed", {"key": key, "error": str(exc)}) from exc

    def clear(self, prefix: str = "") -> int:
        deleted = 0
        try:
            cursor = 0
            while True:
                cursor, keys = self._redis.scan(cursor=cursor, match=f"{prefix}*", count=100)
                if keys:
                    self._redis.delete(*keys)
                    deleted += len(keys)
                if cursor == 0:
                    break
        except redis.RedisError as exc:
            raise CacheBackendError("redis clear failed", {"prefix": prefix, "error": str(exc)}) from exc
        return deleted


def _canonical_number(value: float | int | None) -> str:
    if value is None:
        return _NULL
    # Decimal keeps 50000, 50000.0 and 5E+4 on one spelling
    return format(Decimal(str(value)).normalize(), "f")


def canonicalize(criteria: Criteria | Mapping[str, Any]) -> dict[str, Any]:
    """Return the canonical, order-independent form of *criteria*."""
    if not isinstance(criteria, Criteria):
        criteria = Criteria.model_validate(dict(criteria))
    return {
        "type": criteria.type if criteria.type is not None else _NULL,
        "budget": _canonical_number(criteria.budget),
        "guests": _canonical_number(criteria.guests),
        "theme": criteria.theme if criteria.theme is not None else _NULL,
        "preferences": sorted(criteria.preferences),
    }


class ResultCache:
    """
    Canonicalizing TTL cache for ranked result lists.

    Backend failures never propagate: reads degrade to a miss and writes
    report False.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        config: RecommenderConfig = DEFAULT_RECOMMENDER_CONFIG,
    ):
        self.backend = (
            backend if backend is not None else InMemoryCacheBackend(max_entries=config.cache_max_entries)
        )
        self.default_ttl = config.result_ttl
        self.key_prefix = config.key_prefix
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def generate_key(self, criteria: Criteria | Mapping[str, Any]) -> str:
        normalized = json.dumps(canonicalize(criteria), sort_keys=True, separators=(",", ":"))
        return self.key_prefix + hashlib.sha256(normalized.encode()).hexdigest()

    def get(self, criteria: Criteria | Mapping[str, Any]) -> list[RankedEntry] | None:
        key = self.generate_key(criteria)
        try:
            cached = self.backend.get(key)
            if cached is not None:
                cached = list(cached)
        except CacheBackendError:
            logger.warning("Result cache read failed for %s, computing fresh results", key, exc_info=True)
            cached = None
        with self._lock:
            if cached is None:
                self._misses += 1
            else:
                self._hits += 1
        logger.debug("Result cache %s for key %s", "hit" if cached is not None else "miss", key)
        return cached

    def put(
        self,
        criteria: Criteria | Mapping[str, Any],
        value: list[RankedEntry],
        ttl: int | None = None,
    ) -> bool:
        key = self.generate_key(criteria)
        ttl = ttl if ttl is not None else self.default_ttl
        try:
            self.backend.set(key, list(value), ttl)
        except CacheBackendError:
            logger.warning("Result cache write failed for %s, continuing uncached", key, exc_info=True)
            return False
        logger.debug("Result cache stored for key %s (TTL: %ss)", key, ttl)
        return True

    def forget(self, criteria: Criteria | Mapping[str, Any]) -> bool:
        key = self.generate_key(criteria)
        try:
            self.backend.delete(key)
        except CacheBackendError:
            logger.warning("Result cache delete failed for %s", key, exc_info=True)
            return False
        logger.debug("Result cache forgotten for key %s", key)
        return True

    invalidate = forget

    def clear_all(self) -> bool:
        try:
            removed = self.backend.clear(self.key_prefix)
        except CacheBackendError:
            logger.warning("Result cache clear failed", exc_info=True)
            return False
        logger.info("Cleared %d recommendation cache entries", removed)
        with self._lock:
            self._hits = 0
            self._misses = 0
        return True

    def stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "backend": self.backend.name,
            "default_ttl": self.default_ttl,
            "key_prefix": self.key_prefix,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


def build_result_cache(config: RecommenderConfig = DEFAULT_RECOMMENDER_CONFIG) -> ResultCache:
    """Pick Redis when a URL is configured, otherwise the in-memory store."""
    if config.redis_url:
        return ResultCache(RedisCacheBackend.from_url(config.redis_url), config)
    return ResultCache(InMemoryCacheBackend(max_entries=config.cache_max_entries), config)
