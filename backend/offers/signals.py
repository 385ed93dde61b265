"""Offer mutation events."""

import logging
from dataclasses import dataclass
from typing import Optional

from django.dispatch import Signal

logger = logging.getLogger(__name__)

# Sent with ``mutation=OfferMutation`` after every committed create or transition
offer_mutated = Signal()

KIND_CREATED = "created"
KIND_TRANSITION = "transition"


@dataclass(frozen=True)
class OfferMutation:
    offer_id: int
    business_id: int
    rider_id: Optional[int]
    previous_status: Optional[str]
    status: str
    kind: str = KIND_TRANSITION


def emit_offer_mutation(offer, previous_status: Optional[str], kind: str = KIND_TRANSITION) -> OfferMutation:
    """Broadcast a mutation to every receiver. Receiver failures are logged, never raised."""
    mutation = OfferMutation(
        offer_id=offer.pk,
        business_id=offer.business_id,
        rider_id=offer.accepted_by_id,
        previous_status=previous_status,
        status=offer.status,
        kind=kind,
    )
    for receiver, result in offer_mutated.send_robust(sender=offer.__class__, mutation=mutation):
        if isinstance(result, Exception):
            logger.error(
                "Offer mutation receiver %r failed for offer %s: %s",
                receiver, offer.pk, result,
                exc_info=(type(result), result, result.__traceback__),
            )
    return mutation
