"""
Geospatial matching service.

This module handles:
    - Validating and normalizing rider search input
    - Filtering open offers by radius, payment, package and vehicle capacity
    - Ranking and paginating the candidates
"""

from .nearby_search import (
    VEHICLE_CAPACITY,
    NearbySearchQuery,
    NearbySearchResult,
    SearchFilters,
    build_search_query,
    find_nearby_offers,
)

__all__ = [
    "VEHICLE_CAPACITY",
    "NearbySearchQuery",
    "NearbySearchResult",
    "SearchFilters",
    "build_search_query",
    "find_nearby_offers",
]
