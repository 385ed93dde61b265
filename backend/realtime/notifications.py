"""
Notification helpers for sending WebSocket messages to connected clients.

Every user joins its personal group ``user_<id>`` when it connects, so the
sink only needs a user id. Delivery is best-effort: failures are logged and
never reach the operation that triggered them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

# Who hears about each entered status (besides the actor)
BUSINESS_NOTIFIED = ('accepted', 'picked_up', 'in_transit', 'delivered')


# ---------------------- Generic Sink ----------------------

def notify(user_id: Optional[int], event_type: str, payload: Dict[str, Any]) -> bool:
    """
    Send an event to a user's personal group: user_<user_id>

    Args:
        user_id: Target user ID
        event_type: Event name delivered to the client
        payload: JSON-serializable event data

    Returns:
        True if handed to the channel layer, False otherwise
    """
    if not user_id:
        return False

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    message = {
        "type": "offer_event",
        "event": event_type,
        "payload": payload,
    }

    try:
        logger.debug("WS -> user_%s: %s", user_id, event_type)
        async_to_sync(channel_layer.group_send)(f"user_{user_id}", message)
    except Exception:
        logger.exception("Failed to notify user %s of %s", user_id, event_type)
        return False
    return True


# ---------------------- Offer Event Notifications ----------------------

def counterparty_for(offer, actor_id: Optional[int]) -> Optional[int]:
    """Pick the party to tell about the offer's current status."""
    if offer.status in BUSINESS_NOTIFIED:
        return offer.business_id
    if offer.status == 'cancelled':
        return offer.accepted_by_id
    if offer.status == 'completed':
        return offer.accepted_by_id if actor_id == offer.business_id else offer.business_id
    return None


def notify_offer_event(offer, actor_id: Optional[int], message: str = "") -> bool:
    """Tell the counterparty that ``offer`` entered its current status."""
    recipient = counterparty_for(offer, actor_id)
    if not recipient:
        return False

    from offers.serializers import serialize_offer

    try:
        payload = {
            "offerId": offer.id,
            "status": offer.status,
            "actor": actor_id,
            "offer": serialize_offer(offer),
        }
    except Exception:
        logger.exception("Failed to build notification payload for offer %s", offer.id)
        return False

    if message:
        payload["message"] = message

    return notify(recipient, f"offer_{offer.status}", payload)
