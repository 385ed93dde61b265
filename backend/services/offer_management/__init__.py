"""
Offer management service - Offer lifecycle and dispatch operations.

This module handles:
    - Creating offers
    - Searching nearby offers
    - Accepting offers (atomic claim)
    - Advancing and cancelling offers
    - Status history, per-user lists and dashboards
"""

from .dispatch import (
    accept_offer,
    advance_status,
    business_dashboard,
    cancel_offer,
    create_offer,
    get_offer,
    get_status_history,
    list_business_offers,
    list_rider_deliveries,
    rider_dashboard,
    search_nearby,
)
from .exceptions import (
    DispatchError,
    ForbiddenActionError,
    GeocodingFailedError,
    InvalidLocationError,
    InvalidTransitionError,
    OfferAlreadyClaimedError,
    OfferNotFoundError,
    OfferValidationError,
    SearchTimeoutError,
)
from .state_machine import TRANSITIONS, transition_offer, valid_next_statuses

__all__ = [
    # Dispatch operations
    "accept_offer",
    "advance_status",
    "business_dashboard",
    "cancel_offer",
    "create_offer",
    "get_offer",
    "get_status_history",
    "list_business_offers",
    "list_rider_deliveries",
    "rider_dashboard",
    "search_nearby",
    # State machine
    "TRANSITIONS",
    "transition_offer",
    "valid_next_statuses",
    # Exceptions
    "DispatchError",
    "ForbiddenActionError",
    "GeocodingFailedError",
    "InvalidLocationError",
    "InvalidTransitionError",
    "OfferAlreadyClaimedError",
    "OfferNotFoundError",
    "OfferValidationError",
    "SearchTimeoutError",
]
