"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.events import OfferEventConsumer

websocket_urlpatterns = [
    # Offer notifications for businesses and riders
    # URL: ws://localhost:8000/ws/events/?token=<jwt>
    re_path(
        r"ws/events/$",
        OfferEventConsumer.as_asgi(),
        name="events-ws"
    ),
]
