"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .events import OfferEventConsumer

__all__ = [
    "BaseConsumer",
    "OfferEventConsumer",
]
