"""
Cache backends for the coherency layer.

Every backend stores JSON snapshots with a TTL and supports exact-key and
glob-pattern deletion. The Redis backend is the production one; the in-process
backend serves tests and single-process development; the dummy backend turns
caching off entirely (every read is a miss).
"""

from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from typing import Any, Dict, Iterable, Optional, Tuple

import redis
from django.core.serializers.json import DjangoJSONEncoder

logger = logging.getLogger(__name__)

MISSING = object()


def dumps(value: Any) -> str:
    return json.dumps(value, cls=DjangoJSONEncoder, separators=(",", ":"))


def loads(raw: str) -> Any:
    return json.loads(raw)


class BaseCacheBackend:
    """Interface shared by all backends. ``get`` returns MISSING on a miss."""

    name = "base"

    def get(self, key: str) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: int) -> None:
        raise NotImplementedError

    def delete(self, *keys: str) -> int:
        raise NotImplementedError

    def delete_pattern(self, pattern: str) -> int:
        raise NotImplementedError

    def purge_expired(self, deadline: float) -> int:
        """Drop dead entries until ``deadline`` (time.monotonic). Returns count removed."""
        return 0

    def ping(self) -> bool:
        return True


class RedisCacheBackend(BaseCacheBackend):
    """Redis-backed snapshots: SETEX on write, SCAN MATCH for pattern deletes."""

    name = "redis"
    SCAN_BATCH = 500

    def __init__(self, redis_client: Optional[redis.Redis] = None, url: Optional[str] = None,
                 key_prefix: str = ""):
        self._redis = redis_client or redis.Redis.from_url(url, decode_responses=True)
        self._prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Any:
        raw = self._redis.get(self._key(key))
        if raw is None:
            return MISSING
        return loads(raw)

    def set(self, key: str, value: Any, ttl: int) -> None:
        self._redis.setex(self._key(key), int(ttl), dumps(value))

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(self._redis.delete(*[self._key(k) for k in keys]))

    def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        batch = []
        for key in self._redis.scan_iter(match=self._key(pattern), count=self.SCAN_BATCH):
            batch.append(key)
            if len(batch) >= self.SCAN_BATCH:
                deleted += int(self._redis.delete(*batch))
                batch = []
        if batch:
            deleted += int(self._redis.delete(*batch))
        return deleted

    def purge_expired(self, deadline: float) -> int:
        # Redis expires keys itself; only keys that lost their TTL need cleanup
        removed = 0
        for key in self._redis.scan_iter(match=self._key("*"), count=self.SCAN_BATCH):
            if time.monotonic() >= deadline:
                break
            if self._redis.ttl(key) == -1:
                removed += int(self._redis.delete(key))
        return removed

    def ping(self) -> bool:
        return bool(self._redis.ping())


class LocMemCacheBackend(BaseCacheBackend):
    """Per-process cache. Entries expire lazily on read and during sweeps."""

    name = "locmem"

    def __init__(self, clock=time.monotonic):
        self._data: Dict[str, Tuple[float, str]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return MISSING
            expires_at, raw = entry
            if expires_at <= self._clock():
                del self._data[key]
                return MISSING
        return loads(raw)

    def set(self, key: str, value: Any, ttl: int) -> None:
        raw = dumps(value)
        with self._lock:
            self._data[key] = (self._clock() + ttl, raw)

    def delete(self, *keys: str) -> int:
        deleted = 0
        with self._lock:
            for key in keys:
                if self._data.pop(key, None) is not None:
                    deleted += 1
        return deleted

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                del self._data[key]
        return len(matched)

    def purge_expired(self, deadline: float) -> int:
        removed = 0
        with self._lock:
            now = self._clock()
            for key in list(self._data):
                if time.monotonic() >= deadline:
                    break
                if self._data[key][0] <= now:
                    del self._data[key]
                    removed += 1
        return removed

    def keys(self) -> Iterable[str]:
        with self._lock:
            return list(self._data)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class DummyCacheBackend(BaseCacheBackend):
    """Caching disabled: never stores anything."""

    name = "dummy"

    def get(self, key: str) -> Any:
        return MISSING

    def set(self, key: str, value: Any, ttl: int) -> None:
        return None

    def delete(self, *keys: str) -> int:
        return 0

    def delete_pattern(self, pattern: str) -> int:
        return 0
