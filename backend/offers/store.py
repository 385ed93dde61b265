"""
Offer store primitives.

Every status change goes through ``apply_transition``: one conditional UPDATE
guarded by the status and version that were read, so two writers racing on the
same snapshot can never both succeed.
"""

import logging
from typing import Any, Dict, Optional

from django.db.models import F
from django.utils import timezone

from offers.models import Offer
from services.offer_management.exceptions import OfferNotFoundError

logger = logging.getLogger(__name__)


def create_offer(business, **fields) -> Offer:
    """Insert a new open offer. Creation appends nothing to the history."""
    return Offer.objects.create(
        business=business,
        status=Offer.STATUS_OPEN,
        status_history=[],
        **fields,
    )


def get_offer(offer_id) -> Offer:
    try:
        return Offer.objects.select_related('business', 'accepted_by').get(pk=offer_id)
    except (Offer.DoesNotExist, ValueError, TypeError):
        raise OfferNotFoundError(f"Offer {offer_id} not found")


def build_history_entry(status: str, actor_id, at, notes: str = "",
                        location: Optional[list] = None) -> Dict[str, Any]:
    return {
        "status": status,
        "actor": actor_id,
        "timestamp": at.isoformat(),
        "notes": notes or "",
        "location": (
            {"type": "Point", "coordinates": [float(location[0]), float(location[1])]}
            if location else None
        ),
    }


def apply_transition(
    offer: Offer,
    target: str,
    actor_id,
    notes: str = "",
    location: Optional[list] = None,
    rider_id=None,
    require_unassigned: bool = False,
    extra_fields: Optional[Dict[str, Any]] = None,
) -> Optional[Offer]:
    """
    Move ``offer`` to ``target`` if and only if the stored row still matches
    the snapshot (same status and version, and no rider when ``require_unassigned``).

    Returns the fresh row, or None when the condition no longer held.
    """
    now = timezone.now()
    entry = build_history_entry(target, actor_id, now, notes, location)

    conditions = {'pk': offer.pk, 'status': offer.status, 'version': offer.version}
    if require_unassigned:
        conditions['accepted_by__isnull'] = True

    updates = {
        'status': target,
        'version': F('version') + 1,
        # The version guard makes the history read above the current one
        'status_history': list(offer.status_history or []) + [entry],
        'updated_at': now,
    }
    timestamp_field = Offer.TIMESTAMP_FIELDS.get(target)
    if timestamp_field:
        updates[timestamp_field] = now
    if rider_id is not None:
        updates['accepted_by_id'] = rider_id
    if extra_fields:
        updates.update(extra_fields)

    rows = Offer.objects.filter(**conditions).update(**updates)
    if rows == 0:
        logger.info(
            "Conditional update lost for offer %s (%s -> %s, version %s)",
            offer.pk, offer.status, target, offer.version,
        )
        return None
    return get_offer(offer.pk)
