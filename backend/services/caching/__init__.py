"""
Cache coherency layer.

This module handles:
    - Read-through caching of nearby searches, per-user offer lists,
      dashboards and the auth-by-email lookup
    - Invalidation driven by offer mutation events and profile changes
    - Periodic, time-boxed cache maintenance
"""

from .backends import (
    MISSING,
    BaseCacheBackend,
    DummyCacheBackend,
    LocMemCacheBackend,
    RedisCacheBackend,
)
from .coherency import OfferCacheCoherency, get_offer_cache, set_offer_cache

__all__ = [
    "MISSING",
    "BaseCacheBackend",
    "DummyCacheBackend",
    "LocMemCacheBackend",
    "RedisCacheBackend",
    "OfferCacheCoherency",
    "get_offer_cache",
    "set_offer_cache",
]
