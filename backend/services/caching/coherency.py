"""
Read-through cache fronting the hot read paths, kept coherent with the offer store.

Consistency contract:
    - Entries are snapshots; the offer store stays the only source of truth.
    - Nearby-search entries may be served until their TTL expires or until the
      next offer mutation anywhere clears them all (pattern invalidation).
    - Per-user lists and dashboards are dropped by exact key when one of that
      user's offers mutates.
    - Auth-by-email entries are dropped only when that user's profile or
      credentials change.
    - Concurrent misses may both compute; nothing relies on single-flight.
    - A broken backend degrades every read to a direct computation.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from common.conf import get_setting, get_ttl
from . import keys
from .backends import (
    MISSING,
    BaseCacheBackend,
    DummyCacheBackend,
    LocMemCacheBackend,
    RedisCacheBackend,
)

logger = logging.getLogger(__name__)


class OfferCacheCoherency:
    """Cache service with explicit get/set/invalidate operations."""

    def __init__(self, backend: BaseCacheBackend):
        self.backend = backend
        self._stats_lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "errors": 0, "invalidations": 0}

    # ---------------------- Core Operations ----------------------

    def get(self, key: str) -> Any:
        """Return the live entry for ``key`` or MISSING. Backend errors count as a miss."""
        try:
            return self.backend.get(key)
        except Exception:
            logger.exception("Cache get failed for %s", key)
            self._bump("errors")
            return MISSING

    def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.backend.set(key, value, ttl)
        except Exception:
            logger.exception("Cache set failed for %s", key)
            self._bump("errors")

    def invalidate(self, *exact_keys: str, pattern: Optional[str] = None) -> int:
        """Drop exact keys and/or every key matching a glob pattern."""
        removed = 0
        try:
            if exact_keys:
                removed += self.backend.delete(*exact_keys)
            if pattern:
                removed += self.backend.delete_pattern(pattern)
        except Exception:
            logger.exception("Cache invalidation failed (keys=%s, pattern=%s)", exact_keys, pattern)
            self._bump("errors")
            return removed
        self._bump("invalidations")
        return removed

    def read_through(self, key: str, compute: Callable[[], Any], ttl: int,
                     cache_none: bool = True) -> Any:
        """Serve a live entry, or compute from the store, remember it for ``ttl`` and return it."""
        cached = self.get(key)
        if cached is not MISSING:
            self._bump("hits")
            return cached

        self._bump("misses")
        value = compute()
        if value is not None or cache_none:
            self.set(key, value, ttl)
        return value

    # ---------------------- Cached Read Paths ----------------------

    def nearby_offers(self, params: Dict[str, Any], compute: Callable[[], Any]) -> Any:
        return self.read_through(keys.nearby_key(params), compute, get_ttl("nearby_offers"))

    def business_offers(self, business_id, compute: Callable[[], Any]) -> Any:
        return self.read_through(keys.business_offers_key(business_id), compute, get_ttl("offer_lists"))

    def rider_offers(self, rider_id, compute: Callable[[], Any]) -> Any:
        return self.read_through(keys.rider_offers_key(rider_id), compute, get_ttl("offer_lists"))

    def business_dashboard(self, business_id, compute: Callable[[], Any]) -> Any:
        return self.read_through(keys.business_stats_key(business_id), compute, get_ttl("dashboard"))

    def rider_dashboard(self, rider_id, compute: Callable[[], Any]) -> Any:
        return self.read_through(keys.rider_stats_key(rider_id), compute, get_ttl("dashboard"))

    def identity_by_email(self, email: str, compute: Callable[[], Any]) -> Any:
        # Unknown emails are not cached so a fresh registration can log in right away
        return self.read_through(keys.auth_email_key(email), compute, get_ttl("identity"), cache_none=False)

    # ---------------------- Invalidation ----------------------

    def handle_offer_mutation(self, mutation) -> int:
        """
        Invalidate everything one offer mutation can affect.

        The owner's list and dashboard (and the rider's, once one is assigned)
        go by exact key; every nearby-search entry goes by pattern since the set
        of cached searches that could include this offer is unbounded.
        """
        exact = [
            keys.business_offers_key(mutation.business_id),
            keys.business_stats_key(mutation.business_id),
        ]
        if mutation.rider_id:
            exact += [
                keys.rider_offers_key(mutation.rider_id),
                keys.rider_stats_key(mutation.rider_id),
            ]
        removed = self.invalidate(*exact, pattern=keys.NEARBY_PATTERN)
        logger.debug(
            "Invalidated %d cache entries after offer %s %s -> %s",
            removed, mutation.offer_id, mutation.previous_status, mutation.status,
        )
        return removed

    def invalidate_identity(self, *emails: str) -> int:
        unique = {keys.auth_email_key(e) for e in emails if e}
        if not unique:
            return 0
        return self.invalidate(*sorted(unique))

    # ---------------------- Maintenance ----------------------

    def sweep(self, time_budget: Optional[float] = None) -> Dict[str, Any]:
        """Time-boxed cleanup of dead entries. Never raises."""
        budget = float(time_budget if time_budget is not None else get_setting("CACHE_SWEEP_TIME_BUDGET"))
        started = time.monotonic()
        removed = 0
        try:
            removed = self.backend.purge_expired(started + budget)
        except Exception:
            logger.exception("Cache sweep failed")
            self._bump("errors")
        elapsed = time.monotonic() - started
        logger.info("Cache sweep removed %d entries in %.3fs", removed, elapsed)
        return {"removed": removed, "elapsed": round(elapsed, 3), "backend": self.backend.name}

    def stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            data = dict(self._stats)
        lookups = data["hits"] + data["misses"]
        data["hit_rate"] = round(data["hits"] / lookups * 100, 2) if lookups else 0.0
        data["backend"] = self.backend.name
        return data

    def healthy(self) -> bool:
        try:
            return self.backend.ping()
        except Exception:
            logger.exception("Cache backend ping failed")
            return False

    def _bump(self, counter: str) -> None:
        with self._stats_lock:
            self._stats[counter] += 1


# ---------------------- Singleton Instance ----------------------

_offer_cache: Optional[OfferCacheCoherency] = None
_offer_cache_lock = threading.Lock()


def build_backend(name: Optional[str] = None) -> BaseCacheBackend:
    name = name or get_setting("CACHE_BACKEND")
    if name == "redis":
        return RedisCacheBackend(
            url=get_setting("CACHE_REDIS_URL"),
            key_prefix=get_setting("CACHE_KEY_PREFIX"),
        )
    if name == "locmem":
        return LocMemCacheBackend()
    if name == "dummy":
        return DummyCacheBackend()
    raise ValueError(f"Unknown cache backend: {name}")


def get_offer_cache() -> OfferCacheCoherency:
    """Get singleton OfferCacheCoherency instance."""
    global _offer_cache
    if _offer_cache is None:
        with _offer_cache_lock:
            if _offer_cache is None:
                _offer_cache = OfferCacheCoherency(build_backend())
    return _offer_cache


def set_offer_cache(cache: Optional[OfferCacheCoherency]) -> None:
    """Swap the process-wide instance (None rebuilds it from settings on next use)."""
    global _offer_cache
    with _offer_cache_lock:
        _offer_cache = cache
