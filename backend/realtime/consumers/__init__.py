"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .client_consumer import ClientConsumer
from .courier_consumer import CourierConsumer

__all__ = [
    "BaseConsumer",
    "ClientConsumer",
    "CourierConsumer",
]
