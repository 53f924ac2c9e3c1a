"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.client_consumer import ClientConsumer
from .consumers.courier_consumer import CourierConsumer

websocket_urlpatterns = [
    # Delivery persons: offers, location updates
    # URL: ws://localhost:8000/ws/courier/?token=<access>
    re_path(
        r"ws/courier/$",
        CourierConsumer.as_asgi(),
        name="courier-ws"
    ),

    # Clients and admins: order status, exhausted orders
    # URL: ws://localhost:8000/ws/client/?token=<access>
    re_path(
        r"ws/client/$",
        ClientConsumer.as_asgi(),
        name="client-ws"
    ),
]
