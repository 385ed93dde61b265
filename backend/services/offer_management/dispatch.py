"""
Dispatch operations exposed to the API layer.

Each operation takes an explicit ``Actor`` (id, role, verified), checks role
and ownership, then delegates to the store, the state machine, the matcher or
the cache. Views never touch models directly.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Sum

from common.conf import get_setting
from common import geocoding
from common.utils.geo import distance_between, estimate_duration_minutes, is_valid_coordinate
from offers import store
from offers.models import Offer
from offers.serializers import serialize_offer
from offers.signals import KIND_CREATED, emit_offer_mutation
from services.caching import get_offer_cache
from services.matching import build_search_query, find_nearby_offers
from .exceptions import (
    ForbiddenActionError,
    InvalidTransitionError,
    OfferValidationError,
)
from .state_machine import transition_offer, valid_next_statuses

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (
    Offer.STATUS_ACCEPTED,
    Offer.STATUS_PICKED_UP,
    Offer.STATUS_IN_TRANSIT,
    Offer.STATUS_DELIVERED,
)
STATUS_VALUES = [value for value, _ in Offer.STATUS_CHOICES]


# ===================== Guards =====================

def _require_role(actor, role: str, verified: bool = False):
    if actor.role != role:
        raise ForbiddenActionError(f"Only {role}s can perform this action")
    if verified and not actor.verified:
        raise ForbiddenActionError(f"Your {role} account must be verified first")


def _is_party(offer: Offer, actor) -> bool:
    if actor.role == 'business':
        return offer.business_id == actor.id
    if actor.role == 'rider':
        return offer.accepted_by_id is not None and offer.accepted_by_id == actor.id
    return False


def _require_party(offer: Offer, actor):
    if not _is_party(offer, actor):
        raise ForbiddenActionError("You are not a party to this offer")


# ===================== Business Operations =====================

def _resolve_coordinates(coordinates, address: str, geocoder) -> List[float]:
    if coordinates is None:
        coordinates = (geocoder or geocoding.get_geocoder()).geocode(address)
    lng, lat = coordinates
    if not is_valid_coordinate(lng, lat):
        raise OfferValidationError(f"Invalid coordinates for address: {address}")
    return [float(lng), float(lat)]


def _decimal(value: float) -> Decimal:
    return Decimal(str(round(value, 6)))


def create_offer(actor, fields: Dict[str, Any], geocoder=None) -> Offer:
    """
    Post a new open offer for a verified business.

    Args:
        actor: Calling business
        fields: Column values from OfferCreateSerializer.to_offer_fields();
            ``pickup_coordinates``/``delivery_coordinates`` may be None
        geocoder: Geocoder override (defaults to the configured one)

    Raises:
        ForbiddenActionError: Caller is not a verified business
        GeocodingFailedError: An address without coordinates could not be geocoded
    """
    _require_role(actor, 'business', verified=True)

    fields = dict(fields)
    pickup = _resolve_coordinates(fields.pop('pickup_coordinates', None), fields['pickup_address'], geocoder)
    delivery = _resolve_coordinates(fields.pop('delivery_coordinates', None), fields['delivery_address'], geocoder)

    distance = distance_between(pickup, delivery)
    duration = estimate_duration_minutes(distance, get_setting("DEFAULT_VEHICLE_TYPE"))

    business = get_user_model().objects.get(pk=actor.id)
    with transaction.atomic():
        offer = store.create_offer(
            business,
            pickup_longitude=_decimal(pickup[0]),
            pickup_latitude=_decimal(pickup[1]),
            delivery_longitude=_decimal(delivery[0]),
            delivery_latitude=_decimal(delivery[1]),
            estimated_distance=round(distance),
            estimated_duration=duration,
            **fields,
        )

    logger.info("Business %s created offer %s", actor.id, offer.pk)
    emit_offer_mutation(offer, None, KIND_CREATED)
    return store.get_offer(offer.pk)


def list_business_offers(actor, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """A business's own offers, newest first, optionally narrowed to one status."""
    _require_role(actor, 'business')

    def compute():
        qs = Offer.objects.filter(business_id=actor.id).select_related('business')
        return [serialize_offer(o) for o in qs]

    offers = get_offer_cache().business_offers(actor.id, compute)
    if status:
        offers = [o for o in offers if o['status'] == status]
    return offers


def business_dashboard(actor) -> Dict[str, Any]:
    _require_role(actor, 'business')

    def compute():
        qs = Offer.objects.filter(business_id=actor.id)
        by_status = _status_counts(qs)
        spent = qs.filter(status=Offer.STATUS_COMPLETED).aggregate(total=Sum('payment_amount'))['total']
        return {
            'totalOffers': sum(by_status.values()),
            'openOffers': by_status[Offer.STATUS_OPEN],
            'activeOffers': sum(by_status[s] for s in ACTIVE_STATUSES),
            'byStatus': by_status,
            'totalSpent': str(spent or Decimal('0.00')),
        }

    return get_offer_cache().business_dashboard(actor.id, compute)


# ===================== Rider Operations =====================

def search_nearby(actor, location, min_distance=None, max_distance=None, filters=None,
                  sort_by=None, sort_order=None, page=None, limit=None) -> Dict[str, Any]:
    """
    Open offers around a rider, read through the nearby-search cache.

    Raises:
        ForbiddenActionError: Caller is not a rider
        InvalidLocationError: Location missing or out of range
        SearchTimeoutError: The search ran past its time bound
    """
    _require_role(actor, 'rider')
    query = build_search_query(
        location,
        min_distance=min_distance,
        max_distance=max_distance,
        filters=filters,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return get_offer_cache().nearby_offers(
        query.cache_params(),
        lambda: find_nearby_offers(query).as_dict(),
    )


def accept_offer(actor, offer_id) -> Offer:
    """
    Claim an open offer for a verified rider.

    Raises:
        OfferAlreadyClaimedError: Another rider holds (or just won) the offer
    """
    _require_role(actor, 'rider', verified=True)
    offer = store.get_offer(offer_id)
    return transition_offer(offer, actor, Offer.STATUS_ACCEPTED).offer


def list_rider_deliveries(actor, status: Optional[str] = None) -> List[Dict[str, Any]]:
    _require_role(actor, 'rider')

    def compute():
        qs = Offer.objects.filter(accepted_by_id=actor.id).select_related('business')
        return [serialize_offer(o) for o in qs]

    offers = get_offer_cache().rider_offers(actor.id, compute)
    if status:
        offers = [o for o in offers if o['status'] == status]
    return offers


def rider_dashboard(actor) -> Dict[str, Any]:
    _require_role(actor, 'rider')

    def compute():
        qs = Offer.objects.filter(accepted_by_id=actor.id)
        by_status = _status_counts(qs)
        earned = qs.filter(status=Offer.STATUS_COMPLETED).aggregate(total=Sum('payment_amount'))['total']
        return {
            'totalDeliveries': sum(by_status.values()),
            'activeDeliveries': sum(by_status[s] for s in ACTIVE_STATUSES),
            'completedDeliveries': by_status[Offer.STATUS_COMPLETED],
            'byStatus': by_status,
            'totalEarnings': str(earned or Decimal('0.00')),
        }

    return get_offer_cache().rider_dashboard(actor.id, compute)


# ===================== Shared Operations =====================

def get_offer(actor, offer_id) -> Offer:
    """Parties always see an offer; other riders only while it is open."""
    offer = store.get_offer(offer_id)
    if _is_party(offer, actor):
        return offer
    if actor.role == 'rider' and offer.status == Offer.STATUS_OPEN:
        return offer
    raise ForbiddenActionError("You do not have access to this offer")


def advance_status(actor, offer_id, target: str, notes: str = "", location=None) -> Offer:
    """
    Move an offer to ``target`` per the transition table.

    Raises:
        ForbiddenActionError: Caller is neither the owner nor the assigned rider
        InvalidTransitionError: Transition not permitted from the current status
    """
    if target == Offer.STATUS_ACCEPTED:
        return accept_offer(actor, offer_id)
    if target == Offer.STATUS_CANCELLED:
        return cancel_offer(actor, offer_id, notes)

    offer = store.get_offer(offer_id)
    if target not in STATUS_VALUES:
        raise InvalidTransitionError(
            f"Unknown status '{target}'",
            current_status=offer.status,
            valid_next_states=valid_next_statuses(offer.status),
        )
    _require_party(offer, actor)
    return transition_offer(offer, actor, target, notes=notes, location=location).offer


def cancel_offer(actor, offer_id, reason: str = "") -> Offer:
    """Cancel an in-flight offer. Only the owning business may cancel."""
    offer = store.get_offer(offer_id)
    _require_party(offer, actor)
    return transition_offer(offer, actor, Offer.STATUS_CANCELLED, notes=reason).offer


def get_status_history(actor, offer_id) -> List[Dict[str, Any]]:
    offer = store.get_offer(offer_id)
    _require_party(offer, actor)
    return list(offer.status_history or [])


def _status_counts(qs) -> Dict[str, int]:
    counts = {value: 0 for value in STATUS_VALUES}
    for row in qs.values('status').annotate(n=Count('id')).order_by():
        counts[row['status']] = row['n']
    return counts
