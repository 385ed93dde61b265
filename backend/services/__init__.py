"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - offer_management: Offer lifecycle, atomic claim and dispatch facade
    - matching: Nearby offer search for riders
    - caching: Read-through caching and mutation-driven invalidation
"""

# Expose commonly used functions at package level
from .offer_management import (
    create_offer,
    search_nearby,
    accept_offer,
    advance_status,
    cancel_offer,
    get_offer,
    get_status_history,
    transition_offer,
    valid_next_statuses,
    InvalidTransitionError,
    OfferAlreadyClaimedError,
    OfferNotFoundError,
    ForbiddenActionError,
)
from .matching import build_search_query, find_nearby_offers

__all__ = [
    # Matching
    "build_search_query",
    "find_nearby_offers",
    # Offer management
    "create_offer",
    "search_nearby",
    "accept_offer",
    "advance_status",
    "cancel_offer",
    "get_offer",
    "get_status_history",
    "transition_offer",
    "valid_next_statuses",
    # Exceptions
    "InvalidTransitionError",
    "OfferAlreadyClaimedError",
    "OfferNotFoundError",
    "ForbiddenActionError",
]
