from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import redis

from recommender.errors import CacheBackendError
from recommender.recommendations.cache import (
    InMemoryCacheBackend,
    RedisCacheBackend,
    ResultCache,
    build_result_cache,
    canonicalize,
)
from recommender.recommendations.config import RecommenderConfig
from recommender.recommendations.models import CatalogItem, Criteria, RankedEntry

ITEM = CatalogItem(id=7, name="Garden Gala", category="wedding", price=45000, capacity=120)
RANKED = [RankedEntry(item=ITEM, total_score=80, justifications=["Type match (+40)", "Within budget (+40)"])]


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenBackend:
    name = "broken"

    def get(self, key):
        raise CacheBackendError("down")

    def set(self, key, value, ttl):
        raise CacheBackendError("down")

    def delete(self, key):
        raise CacheBackendError("down")

    def clear(self, prefix):
        raise CacheBackendError("down")


def _cache(clock: FakeClock | None = None) -> ResultCache:
    return ResultCache(InMemoryCacheBackend(clock or FakeClock()), RecommenderConfig(result_ttl=60))


# ── Canonicalization ─────────────────────────────────────────────────────


def test_key_ignores_preference_order():
    cache = _cache()
    a = {"type": "wedding", "preferences": ["flowers", "live band", "catering"]}
    b = {"type": "wedding", "preferences": ["catering", "flowers", "live band"]}
    assert cache.generate_key(a) == cache.generate_key(b)


def test_key_ignores_numeric_representation():
    cache = _cache()
    keys = {
        cache.generate_key({"budget": 50000, "guests": 100}),
        cache.generate_key({"budget": 50000.0, "guests": 100.0}),
        cache.generate_key({"budget": "50000", "guests": "100"}),
        cache.generate_key({"guests": " 100 ", "budget": "50000.00"}),
    }
    assert len(keys) == 1


def test_key_ignores_theme_whitespace_and_field_order():
    cache = _cache()
    a = {"theme": "  elegant, modern ", "type": "debut"}
    b = {"type": "debut", "theme": "elegant, modern"}
    assert cache.generate_key(a) == cache.generate_key(b)


def test_key_treats_null_and_absent_alike():
    cache = _cache()
    assert cache.generate_key({"budget": None, "theme": None}) == cache.generate_key({})
    assert cache.generate_key({"theme": "   "}) == cache.generate_key({})


def test_key_accepts_model_or_mapping():
    cache = _cache()
    criteria = Criteria(type="wedding", budget=50000)
    assert cache.generate_key(criteria) == cache.generate_key({"budget": "50000", "type": "wedding"})


def test_key_differs_by_type():
    cache = _cache()
    assert cache.generate_key({"type": "wedding"}) != cache.generate_key({"type": "birthday"})
    assert cache.generate_key({"type": "wedding"}) != cache.generate_key({"type": "Wedding"})


def test_key_is_prefixed_hash():
    key = _cache().generate_key({"type": "wedding"})
    assert key.startswith("recommendations_")
    assert len(key) == len("recommendations_") + 64


def test_canonical_form_uses_sentinel_for_missing_fields():
    canonical = canonicalize({})
    assert canonical["budget"] == canonical["guests"] == canonical["type"] == "__none__"
    assert canonical["preferences"] == []


# ── Storage ──────────────────────────────────────────────────────────────


def test_put_then_get_round_trip():
    cache = _cache()
    assert cache.put({"type": "wedding"}, RANKED) is True
    assert cache.get({"type": "wedding"}) == RANKED


def test_get_after_ttl_is_miss():
    clock = FakeClock()
    cache = _cache(clock)
    cache.put({"type": "wedding"}, RANKED, ttl=10)
    clock.now += 9
    assert cache.get({"type": "wedding"}) == RANKED
    clock.now += 1
    assert cache.get({"type": "wedding"}) is None


def test_forget_removes_entry():
    cache = _cache()
    cache.put({"type": "wedding"}, RANKED)
    assert cache.forget({"type": "wedding"}) is True
    assert cache.get({"type": "wedding"}) is None


def test_clear_all_only_drops_prefixed_keys():
    backend = InMemoryCacheBackend(FakeClock())
    backend.set("other_key", "keep", 60)
    cache = ResultCache(backend, RecommenderConfig())
    cache.put({"type": "wedding"}, RANKED)
    cache.put({"type": "debut"}, RANKED)
    assert cache.clear_all() is True
    assert cache.get({"type": "wedding"}) is None
    assert backend.get("other_key") == "keep"


def test_stats_reports_backend_and_hit_rate():
    cache = _cache()
    cache.get({"type": "wedding"})
    cache.put({"type": "wedding"}, RANKED)
    cache.get({"type": "wedding"})
    stats = cache.stats()
    assert stats["backend"] == "memory"
    assert stats["default_ttl"] == 60
    assert stats["key_prefix"] == "recommendations_"
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 50.0


def test_backend_failure_degrades_to_miss():
    cache = ResultCache(BrokenBackend(), RecommenderConfig())
    assert cache.get({"type": "wedding"}) is None
    assert cache.put({"type": "wedding"}, RANKED) is False
    assert cache.forget({"type": "wedding"}) is False
    assert cache.clear_all() is False


# ── Redis backend ────────────────────────────────────────────────────────


def test_redis_backend_serializes_ranked_entries():
    client = MagicMock()
    backend = RedisCacheBackend(client)
    backend.set("recommendations_abc", RANKED, 30)
    key, ttl, payload = client.setex.call_args.args
    assert (key, ttl) == ("recommendations_abc", 30)

    client.get.return_value = payload
    assert backend.get("recommendations_abc") == RANKED


def test_redis_backend_wraps_connection_errors():
    client = MagicMock()
    client.get.side_effect = redis.ConnectionError("refused")
    backend = RedisCacheBackend(client)
    with pytest.raises(CacheBackendError):
        backend.get("recommendations_abc")

    cache = ResultCache(backend, RecommenderConfig())
    assert cache.get({"type": "wedding"}) is None


def test_redis_backend_clear_scans_prefix():
    client = MagicMock()
    client.scan.side_effect = [(5, ["recommendations_a"]), (0, ["recommendations_b"])]
    backend = RedisCacheBackend(client)
    assert backend.clear("recommendations_") == 2
    assert client.scan.call_args.kwargs["match"] == "recommendations_*"


def test_build_result_cache_defaults_to_memory():
    cache = build_result_cache(RecommenderConfig(redis_url=""))
    assert cache.stats()["backend"] == "memory"


def test_redis_backend_unreadable_payload_is_a_miss():
    client = MagicMock()
    client.get.return_value = '{"not": "a list"}'
    backend = RedisCacheBackend(client)
    with pytest.raises(CacheBackendError):
        backend.get("recommendations_abc")

    cache = ResultCache(backend, RecommenderConfig())
    assert cache.get({"type": "wedding"}) is None
    assert cache.stats()["misses"] == 1


def test_hit_returns_a_fresh_list():
    cache = _cache()
    cache.put({"type": "wedding"}, RANKED)
    hit = cache.get({"type": "wedding"})
    hit.clear()
    assert cache.get({"type": "wedding"}) == RANKED


def test_memory_backend_sweeps_expired_entries_when_full():
    clock = FakeClock()
    backend = InMemoryCacheBackend(clock, max_entries=3)
    backend.set("a", 1, ttl=5)
    backend.set("b", 2, ttl=5)
    backend.set("c", 3, ttl=100)
    clock.now += 10
    backend.set("d", 4, ttl=100)

    assert len(backend) == 2
    assert backend.get("c") == 3
    assert backend.get("d") == 4


def test_memory_backend_evicts_oldest_when_full_of_live_entries():
    backend = InMemoryCacheBackend(FakeClock(), max_entries=2)
    backend.set("a", 1, ttl=60)
    backend.set("b", 2, ttl=60)
    backend.set("a", 10, ttl=60)
    backend.set("c", 3, ttl=60)

    assert len(backend) == 2
    assert backend.get("b") is None
    assert backend.get("a") == 10
    assert backend.get("c") == 3
