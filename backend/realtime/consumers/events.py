"""User event WebSocket consumer for offer notifications."""

import logging
from typing import Dict, Any

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class OfferEventConsumer(BaseConsumer):
    """
    WebSocket consumer shared by businesses and riders.

    Handles:
        - Receiving offer lifecycle notifications on the personal group
        - Keepalive pings from mobile clients
    """

    async def on_connect(self):
        if self.role not in ("business", "rider"):
            await self.send_error("This endpoint is for businesses and riders only")
            await self.close()
            return

        logger.info("%s %s connected to offer events", self.role, self.user_id)
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Listening for offer updates",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "ping":
            await self.send_json({"type": "pong"})
        else:
            await self.send_error(f"Unknown message type: {msg_type}")
