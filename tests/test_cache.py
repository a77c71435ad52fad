"""Tests for the pipeline cache backends and the degrading cache helpers."""

from unittest.mock import MagicMock

import pytest
from pymongo.errors import PyMongoError

from src.api.exceptions import CacheError
from src.api.metrics import metrics_service
from src.recommender.cache import (
    InMemoryPipelineCache,
    MongoPipelineCache,
    safe_get,
    safe_set,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenCache:
    def get(self, key):
        raise CacheError("get", key, RuntimeError("connection refused"))

    def set(self, key, value, ttl_seconds):
        raise CacheError("set", key, RuntimeError("connection refused"))


def test_in_memory_get_returns_value_before_expiry():
    """A stored value is readable until its TTL runs out."""
    clock = FakeClock()
    cache = InMemoryPipelineCache(clock=clock)

    cache.set("recs:u1:bakery:p00001", {"recommendations": [1]}, ttl_seconds=60)
    clock.now += 59

    assert cache.get("recs:u1:bakery:p00001") == {"recommendations": [1]}


def test_in_memory_get_after_expiry_is_miss():
    """An expired entry reads as absent and is dropped."""
    clock = FakeClock()
    cache = InMemoryPipelineCache(clock=clock)

    cache.set("key", "value", ttl_seconds=60)
    clock.now += 60

    assert cache.get("key") is None
    assert len(cache) == 0


def test_in_memory_set_overwrites_and_refreshes_ttl():
    clock = FakeClock()
    cache = InMemoryPipelineCache(clock=clock)

    cache.set("key", "old", ttl_seconds=10)
    clock.now += 5
    cache.set("key", "new", ttl_seconds=10)
    clock.now += 8

    assert cache.get("key") == "new"


def test_in_memory_missing_key_is_none():
    assert InMemoryPipelineCache().get("nothing") is None


def test_mongo_cache_creates_indexes():
    collection = MagicMock()

    MongoPipelineCache(collection)

    collection.create_index.assert_any_call("expiresAt", expireAfterSeconds=0)
    assert collection.create_index.call_count == 2


def test_mongo_cache_index_failure_is_not_fatal():
    """An index error at startup is logged, not raised."""
    collection = MagicMock()
    collection.create_index.side_effect = PyMongoError("not authorized")

    cache = MongoPipelineCache(collection)

    assert cache.collection is collection


def test_mongo_cache_get_filters_expired_documents():
    collection = MagicMock()
    collection.find_one.return_value = {"value": ["salt", "sugar"]}
    cache = MongoPipelineCache(collection, ensure_index=False)

    assert cache.get("harmful_ingredients_hypertension") == ["salt", "sugar"]

    query = collection.find_one.call_args[0][0]
    assert query["key"] == "harmful_ingredients_hypertension"
    assert "$gt" in query["expiresAt"]


def test_mongo_cache_get_miss():
    collection = MagicMock()
    collection.find_one.return_value = None
    cache = MongoPipelineCache(collection, ensure_index=False)

    assert cache.get("key") is None


def test_mongo_cache_set_upserts_with_expiry():
    collection = MagicMock()
    cache = MongoPipelineCache(collection, ensure_index=False)

    cache.set("key", {"a": 1}, ttl_seconds=1800)

    args, kwargs = collection.update_one.call_args
    assert args[0] == {"key": "key"}
    assert args[1]["$set"]["value"] == {"a": 1}
    assert "expiresAt" in args[1]["$set"]
    assert kwargs["upsert"] is True


def test_mongo_cache_wraps_driver_errors():
    """Driver failures surface as CacheError for both operations."""
    collection = MagicMock()
    collection.find_one.side_effect = PyMongoError("timeout")
    collection.update_one.side_effect = PyMongoError("timeout")
    cache = MongoPipelineCache(collection, ensure_index=False)

    with pytest.raises(CacheError) as exc_info:
        cache.get("key")
    assert exc_info.value.details["operation"] == "get"

    with pytest.raises(CacheError) as exc_info:
        cache.set("key", 1, ttl_seconds=10)
    assert exc_info.value.details["operation"] == "set"


def test_safe_get_treats_cache_error_as_miss():
    assert safe_get(BrokenCache(), "key") is None
    assert metrics_service.get_metrics()["cache_errors"] == 1


def test_safe_set_swallows_cache_error():
    assert safe_set(BrokenCache(), "key", "value", 60) is False
    assert metrics_service.get_metrics()["cache_errors"] == 1


def test_safe_set_reports_success():
    cache = InMemoryPipelineCache()

    assert safe_set(cache, "key", "value", 60) is True
    assert safe_get(cache, "key") == "value"
