"""
Offer state machine.

The transition table is plain data: adding a status means adding rows here,
nothing else. ``transition_offer`` checks a request against the table, then
applies it with one conditional store update.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Set

from offers import store
from offers.models import Offer
from offers.signals import emit_offer_mutation
from .exceptions import InvalidTransitionError, OfferAlreadyClaimedError

logger = logging.getLogger(__name__)

# Actor kinds used in the table
RIDER = 'rider'
ASSIGNED_RIDER = 'assigned_rider'
OWNER = 'owner'


@dataclass(frozen=True)
class Transition:
    source: str
    target: str
    actors: FrozenSet[str]


TRANSITIONS = (
    Transition(Offer.STATUS_OPEN, Offer.STATUS_ACCEPTED, frozenset({RIDER})),
    Transition(Offer.STATUS_ACCEPTED, Offer.STATUS_PICKED_UP, frozenset({ASSIGNED_RIDER})),
    Transition(Offer.STATUS_ACCEPTED, Offer.STATUS_CANCELLED, frozenset({OWNER})),
    Transition(Offer.STATUS_PICKED_UP, Offer.STATUS_IN_TRANSIT, frozenset({ASSIGNED_RIDER})),
    Transition(Offer.STATUS_PICKED_UP, Offer.STATUS_CANCELLED, frozenset({OWNER})),
    Transition(Offer.STATUS_IN_TRANSIT, Offer.STATUS_DELIVERED, frozenset({ASSIGNED_RIDER})),
    Transition(Offer.STATUS_IN_TRANSIT, Offer.STATUS_CANCELLED, frozenset({OWNER})),
    Transition(Offer.STATUS_DELIVERED, Offer.STATUS_COMPLETED, frozenset({OWNER, ASSIGNED_RIDER})),
)


@dataclass
class TransitionResult:
    """Result object for a successful transition."""
    offer: Offer
    previous_status: str
    transition: Transition


def valid_next_statuses(status: str) -> List[str]:
    return [t.target for t in TRANSITIONS if t.source == status]


def find_transition(source: str, target: str) -> Optional[Transition]:
    for transition in TRANSITIONS:
        if transition.source == source and transition.target == target:
            return transition
    return None


def actor_kinds(offer: Offer, actor) -> Set[str]:
    """Every table actor kind ``actor`` counts as for this offer."""
    kinds = set()
    if actor.role == 'rider':
        kinds.add(RIDER)
        if offer.accepted_by_id is not None and offer.accepted_by_id == actor.id:
            kinds.add(ASSIGNED_RIDER)
    elif actor.role == 'business' and offer.business_id == actor.id:
        kinds.add(OWNER)
    return kinds


def _invalid(offer: Offer, target: str, reason: str = "") -> InvalidTransitionError:
    message = f"Cannot move offer from '{offer.status}' to '{target}'"
    if reason:
        message = f"{message}: {reason}"
    logger.info("Rejected transition on offer %s: %s", offer.pk, message)
    return InvalidTransitionError(
        message,
        current_status=offer.status,
        valid_next_states=valid_next_statuses(offer.status),
    )


def transition_offer(offer: Offer, actor, target: str, notes: str = "",
                     location: Optional[list] = None) -> TransitionResult:
    """
    Apply one table transition to ``offer`` on behalf of ``actor``.

    ``offer`` is the snapshot the caller read; the write only lands if the
    stored row still matches it.

    Raises:
        OfferAlreadyClaimedError: Target is ``accepted`` and a live offer has (or just got) a rider
        InvalidTransitionError: Offer is closed, pair not in the table, guard failed, or the row moved on
    """
    previous = offer.status
    claim = target == Offer.STATUS_ACCEPTED

    if offer.is_terminal:
        raise _invalid(offer, target, "offer is closed")

    if claim and offer.accepted_by_id is not None:
        raise OfferAlreadyClaimedError()

    transition = find_transition(previous, target)
    if transition is None:
        raise _invalid(offer, target)

    if not transition.actors & actor_kinds(offer, actor):
        raise _invalid(offer, target, "not permitted for this actor")

    extra_fields = None
    if target == Offer.STATUS_CANCELLED:
        extra_fields = {'cancellation_reason': notes or ""}

    updated = store.apply_transition(
        offer,
        target,
        actor.id,
        notes=notes,
        location=location,
        rider_id=actor.id if claim else None,
        require_unassigned=claim,
        extra_fields=extra_fields,
    )

    if updated is None:
        fresh = store.get_offer(offer.pk)
        if claim and fresh.accepted_by_id is not None:
            logger.info("Rider %s lost the claim on offer %s", actor.id, offer.pk)
            raise OfferAlreadyClaimedError()
        raise _invalid(fresh, target, "offer changed, reload and retry")

    logger.info("Offer %s: %s -> %s by %s %s", updated.pk, previous, target, actor.role, actor.id)

    emit_offer_mutation(updated, previous)

    from realtime.notifications import notify_offer_event
    notify_offer_event(updated, actor.id, notes)

    return TransitionResult(offer=updated, previous_status=previous, transition=transition)
