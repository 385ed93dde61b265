"""
Nearby offer search for riders.

The database narrows candidates with column filters and a bounding box around
the rider; exact distances, the distance window, dimension/volume checks,
ranking and pagination then run in Python over that candidate set.
"""

import logging
import math
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from django.db.models import Q

from common.conf import get_setting
from common.utils.geo import bounding_box, calculate_distance, is_valid_coordinate
from offers.models import Offer
from services.offer_management.exceptions import (
    InvalidLocationError,
    OfferValidationError,
    SearchTimeoutError,
)

logger = logging.getLogger(__name__)

# Max weight (kg) and volume (cm³) per vehicle
VEHICLE_CAPACITY = {
    'bike': {'max_weight': 5, 'max_volume': 50_000},
    'scooter': {'max_weight': 15, 'max_volume': 150_000},
    'car': {'max_weight': 50, 'max_volume': 500_000},
    'van': {'max_weight': 200, 'max_volume': 2_000_000},
}

DEFAULT_SORT = 'distance'
SORT_ORDERS = ('asc', 'desc')

# Wire sort key -> value extractor over (offer, distance)
SORT_KEYS = {
    'distance': lambda offer, distance: distance,
    'payment': lambda offer, distance: offer.payment_amount,
    'created': lambda offer, distance: offer.created_at,
    'weight': lambda offer, distance: offer.package_weight,
    'deliverBy': lambda offer, distance: offer.deliver_by,
    'estimatedDuration': lambda offer, distance: offer.estimated_duration,
}

# Bounding box slack, in degrees, so decimal rounding never drops edge offers
BOX_MARGIN_DEGREES = 0.0001


@dataclass(frozen=True)
class SearchFilters:
    min_payment: Optional[Decimal] = None
    max_payment: Optional[Decimal] = None
    payment_method: Optional[str] = None
    fragile: Optional[bool] = None
    max_weight: Optional[float] = None
    max_dimensions: Optional[Tuple[float, float, float]] = None
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    deliver_by: Optional[datetime] = None
    business_id: Optional[int] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    vehicle_type: Optional[str] = None


@dataclass(frozen=True)
class NearbySearchQuery:
    longitude: float
    latitude: float
    min_distance: float
    max_distance: float
    filters: SearchFilters = field(default_factory=SearchFilters)
    sort_by: str = DEFAULT_SORT
    sort_order: str = 'asc'
    page: int = 1
    limit: int = 20

    @property
    def location(self) -> List[float]:
        return [self.longitude, self.latitude]

    def cache_params(self) -> Dict[str, Any]:
        """Every parameter that affects the result, for cache keying."""
        return asdict(self)


@dataclass
class NearbySearchResult:
    query: NearbySearchQuery
    matches: List[Tuple[Offer, float]]
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.query.limit) if self.total else 0

    def as_dict(self) -> Dict[str, Any]:
        from offers.serializers import serialize_offer

        offers = []
        for offer, distance in self.matches:
            data = serialize_offer(offer)
            data['distanceFromRider'] = round(distance)
            offers.append(data)

        page = self.query.page
        return {
            'offers': offers,
            'totalOffers': self.total,
            'pagination': {
                'currentPage': page,
                'totalPages': self.total_pages,
                'limit': self.query.limit,
                'hasNext': page < self.total_pages,
                'hasPrev': page > 1,
            },
            'riderLocation': {
                'coordinates': self.query.location,
                'minDistance': self.query.min_distance,
                'maxDistance': self.query.max_distance,
            },
        }


# ---------------------- Query Construction ----------------------

def _parse_location(location: Optional[Sequence]) -> Tuple[float, float]:
    if location is None or isinstance(location, (str, bytes)):
        raise InvalidLocationError()
    try:
        lng, lat = location
    except (TypeError, ValueError):
        raise InvalidLocationError()
    if not is_valid_coordinate(lng, lat):
        raise InvalidLocationError()
    return float(lng), float(lat)


def build_search_query(
    location: Optional[Sequence],
    min_distance: Optional[float] = None,
    max_distance: Optional[float] = None,
    filters: Optional[Dict[str, Any]] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
) -> NearbySearchQuery:
    """
    Validate and normalize raw search input.

    Raises:
        InvalidLocationError: Location missing or out of range
        OfferValidationError: Bad radius, page, limit or filter values
    """
    lng, lat = _parse_location(location)
    precision = int(get_setting("LOCATION_PRECISION"))
    lng, lat = round(lng, precision), round(lat, precision)

    min_distance = float(min_distance) if min_distance is not None else 0.0
    max_distance = float(max_distance) if max_distance is not None else float(get_setting("SEARCH_DEFAULT_MAX_DISTANCE"))
    if min_distance < 0:
        raise OfferValidationError("minDistance cannot be negative")
    if max_distance <= 0 or max_distance > float(get_setting("SEARCH_MAX_DISTANCE")):
        raise OfferValidationError(
            f"maxDistance must be between 0 and {get_setting('SEARCH_MAX_DISTANCE')} meters"
        )
    if min_distance > max_distance:
        raise OfferValidationError("minDistance cannot be greater than maxDistance")

    page = int(page) if page is not None else 1
    limit = int(limit) if limit is not None else int(get_setting("SEARCH_DEFAULT_LIMIT"))
    if page < 1:
        raise OfferValidationError("page must be at least 1")
    if limit < 1:
        raise OfferValidationError("limit must be at least 1")
    limit = min(limit, int(get_setting("SEARCH_MAX_LIMIT")))

    if sort_by not in SORT_KEYS:
        sort_by = DEFAULT_SORT
    if sort_order not in SORT_ORDERS:
        sort_order = 'asc'

    filters = dict(filters or {})
    vehicle_type = filters.get('vehicle_type')
    if vehicle_type and vehicle_type not in VEHICLE_CAPACITY:
        raise OfferValidationError(f"Unknown vehicle type: {vehicle_type}")
    dims = filters.get('max_dimensions')
    if dims is not None:
        if len(dims) != 3:
            raise OfferValidationError("maxDimensions needs length, width and height")
        filters['max_dimensions'] = tuple(float(d) for d in dims)
    for key in ('min_payment', 'max_payment'):
        if filters.get(key) is not None:
            filters[key] = Decimal(str(filters[key]))

    try:
        search_filters = SearchFilters(**{k: v for k, v in filters.items() if v is not None})
    except TypeError as exc:
        raise OfferValidationError(f"Unknown search filter: {exc}")

    if (search_filters.min_payment is not None and search_filters.max_payment is not None
            and search_filters.min_payment > search_filters.max_payment):
        raise OfferValidationError("minPayment cannot be greater than maxPayment")

    return NearbySearchQuery(
        longitude=lng,
        latitude=lat,
        min_distance=min_distance,
        max_distance=max_distance,
        filters=search_filters,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


# ---------------------- Filtering ----------------------

def _weight_bound(max_weight) -> Q:
    # Offers without a recorded weight are not excluded by weight bounds
    return Q(package_weight__isnull=True) | Q(package_weight__lte=max_weight)


def candidate_queryset(query: NearbySearchQuery):
    """Open offers passing every column filter and the bounding box."""
    f = query.filters
    qs = Offer.objects.filter(status=Offer.STATUS_OPEN).select_related('business')

    if f.min_payment is not None:
        qs = qs.filter(payment_amount__gte=f.min_payment)
    if f.max_payment is not None:
        qs = qs.filter(payment_amount__lte=f.max_payment)
    if f.payment_method:
        qs = qs.filter(payment_method=f.payment_method)
    if f.fragile is not None:
        qs = qs.filter(is_fragile=f.fragile)
    if f.max_weight is not None:
        qs = qs.filter(_weight_bound(f.max_weight))
    if f.vehicle_type:
        qs = qs.filter(_weight_bound(VEHICLE_CAPACITY[f.vehicle_type]['max_weight']))

    # Pickup window overlaps the requested one
    if f.available_from is not None:
        qs = qs.filter(Q(pickup_available_until__isnull=True) | Q(pickup_available_until__gte=f.available_from))
    if f.available_until is not None:
        qs = qs.filter(Q(pickup_available_from__isnull=True) | Q(pickup_available_from__lte=f.available_until))

    if f.deliver_by is not None:
        qs = qs.filter(deliver_by__isnull=False, deliver_by__lte=f.deliver_by)
    if f.business_id is not None:
        qs = qs.filter(business_id=f.business_id)
    if f.created_after is not None:
        qs = qs.filter(created_at__gte=f.created_after)
    if f.created_before is not None:
        qs = qs.filter(created_at__lte=f.created_before)

    lat_range, lon_range = bounding_box(query.latitude, query.longitude, query.max_distance)
    if lat_range is not None:
        qs = qs.filter(pickup_latitude__range=(
            round(lat_range[0] - BOX_MARGIN_DEGREES, 6), round(lat_range[1] + BOX_MARGIN_DEGREES, 6)))
    if lon_range is not None:
        qs = qs.filter(pickup_longitude__range=(
            round(lon_range[0] - BOX_MARGIN_DEGREES, 6), round(lon_range[1] + BOX_MARGIN_DEGREES, 6)))
    return qs


def passes_package_limits(offer: Offer, filters: SearchFilters) -> bool:
    if filters.max_dimensions is not None:
        dims = (offer.package_length, offer.package_width, offer.package_height)
        for value, bound in zip(dims, filters.max_dimensions):
            if (value or 0) > bound:
                return False

    if filters.vehicle_type:
        capacity = VEHICLE_CAPACITY[filters.vehicle_type]
        if offer.package_weight is not None and offer.package_weight > capacity['max_weight']:
            return False
        volume = offer.package_volume
        if volume is not None and volume > capacity['max_volume']:
            return False
    return True


# ---------------------- Ranking ----------------------

def rank_matches(matches: List[Tuple[Offer, float]], sort_by: str, sort_order: str) -> List[Tuple[Offer, float]]:
    """Sort by the requested key; missing values last, ties by offer id."""
    extract = SORT_KEYS.get(sort_by, SORT_KEYS[DEFAULT_SORT])
    by_id = sorted(matches, key=lambda m: m[0].id)

    present = [m for m in by_id if extract(*m) is not None]
    missing = [m for m in by_id if extract(*m) is None]
    # Stable sort keeps id order among equal keys in both directions
    present.sort(key=lambda m: extract(*m), reverse=sort_order == 'desc')
    return present + missing


# ---------------------- Search ----------------------

def find_nearby_offers(query: NearbySearchQuery, timeout: Optional[float] = None,
                       clock=time.monotonic) -> NearbySearchResult:
    """
    Run a nearby search.

    Raises:
        SearchTimeoutError: The search ran past its time bound
    """
    timeout = float(timeout if timeout is not None else get_setting("SEARCH_TIMEOUT_SECONDS"))
    deadline = clock() + timeout

    matches = []
    for offer in candidate_queryset(query).iterator(chunk_size=500):
        if clock() > deadline:
            logger.warning("Nearby search timed out at %s after %.1fs", query.location, timeout)
            raise SearchTimeoutError()

        distance = calculate_distance(
            query.latitude, query.longitude, offer.pickup_latitude, offer.pickup_longitude,
        )
        if distance < query.min_distance or distance > query.max_distance:
            continue
        if not passes_package_limits(offer, query.filters):
            continue
        matches.append((offer, distance))

    ranked = rank_matches(matches, query.sort_by, query.sort_order)
    if clock() > deadline:
        logger.warning("Nearby search timed out while ranking at %s", query.location)
        raise SearchTimeoutError()

    start = (query.page - 1) * query.limit
    window = ranked[start:start + query.limit]

    logger.debug(
        "Nearby search at %s within [%s, %s]m: %d matches, page %d",
        query.location, query.min_distance, query.max_distance, len(ranked), query.page,
    )
    return NearbySearchResult(query=query, matches=window, total=len(ranked))
