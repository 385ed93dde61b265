"""
Realtime package for WebSocket communication.

This package provides:
- A WebSocket consumer delivering offer lifecycle events to businesses and riders
- The notification sink used by the offer state machine
- JWT authentication middleware for WebSocket connections

Key Components:
    - consumers/: WebSocket consumers (base, offer events)
    - notifications.py: Best-effort per-user notifications over the channel layer
    - middleware.py: JWT querystring authentication

Usage:
    from realtime.consumers import OfferEventConsumer
    from realtime.notifications import notify, notify_offer_event
"""
