"""Time-bounded key/value cache for pipeline results.

The pipeline depends only on the ``PipelineCache`` protocol, so any key-value
backend can be injected. Backends raise ``CacheError``; pipeline code goes
through ``safe_get`` / ``safe_set`` so a broken cache never changes a response.
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from src.api.exceptions import CacheError
from src.api.metrics import metrics_service

# Configure module logger
logger = logging.getLogger(__name__)

CACHE_COLLECTION = "cache"


class PipelineCache(Protocol):
    """get/set-with-TTL contract used by the pipeline."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...


class InMemoryPipelineCache:
    """Process-local cache with lazy expiry.

    Thread-safe. Expired entries are dropped when they are next read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class MongoPipelineCache:
    """Cache backed by a document-store collection.

    Each key is one document ``{key, value, expiresAt}``. Writes upsert the
    whole document. A TTL index lets the server purge expired documents, and
    reads ignore anything already past ``expiresAt``.
    """

    def __init__(self, collection: Collection, ensure_index: bool = True):
        self.collection = collection

        if ensure_index:
            try:
                self.collection.create_index([("key", ASCENDING)], unique=True)
                self.collection.create_index("expiresAt", expireAfterSeconds=0)
            except PyMongoError as e:
                logger.warning(f"Could not ensure cache indexes: {e}")

    def get(self, key: str) -> Optional[Any]:
        now = datetime.now(timezone.utc)
        try:
            document = self.collection.find_one(
                {"key": key, "expiresAt": {"$gt": now}},
                {"_id": 0, "value": 1},
            )
        except PyMongoError as e:
            raise CacheError("get", key, e) from e

        if document is None:
            return None
        return document.get("value")

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        try:
            self.collection.update_one(
                {"key": key},
                {"$set": {"value": value, "expiresAt": expires_at}},
                upsert=True,
            )
        except PyMongoError as e:
            raise CacheError("set", key, e) from e


def safe_get(cache: PipelineCache, key: str) -> Optional[Any]:
    """Read from the cache, treating any cache failure as a miss."""
    try:
        return cache.get(key)
    except CacheError as e:
        metrics_service.record_cache_error()
        logger.warning(
            "Cache read failed, treating as miss",
            extra={"cache_key": key, "error": e.message},
        )
        return None


def safe_set(cache: PipelineCache, key: str, value: Any, ttl_seconds: int) -> bool:
    """Write to the cache, logging and swallowing cache failures.

    Returns:
        True if the value was stored.
    """
    try:
        cache.set(key, value, ttl_seconds)
        return True
    except CacheError as e:
        metrics_service.record_cache_error()
        logger.warning(
            "Cache write failed, continuing without cache",
            extra={"cache_key": key, "error": e.message},
        )
        return False
