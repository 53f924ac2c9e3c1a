"""Delivery person WebSocket consumer for order offers and location updates."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from accounts.models import UserRole
from couriers import services as courier_services
from couriers.models import DeliveryPersonProfile
from realtime.notifications import courier_group
from services.exceptions import ImplausibleLocationError

logger = logging.getLogger(__name__)


class CourierConsumer(BaseConsumer):
    """
    WebSocket consumer for delivery persons.

    Handles:
        - Location updates (same checks as the HTTP fallback)
        - Online/offline switches
        - Offer notifications (order_offer, offer_expired, offer_withdrawn, order_cancelled)
    """

    def allowed(self) -> bool:
        return self.role == UserRole.DELIVERY_PERSON

    async def on_connect(self):
        await self._join_group(courier_group(self.user_id))
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Delivery person connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "location_update":
            await self._handle_location_update(data)
        elif msg_type == "status_update":
            await self._handle_status_update(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_location_update(self, data: Dict[str, Any]):
        lat = data.get("latitude")
        lon = data.get("longitude")

        if lat is None or lon is None:
            await self.send_error("location_update requires latitude and longitude")
            return

        try:
            lat = float(lat)
            lon = float(lon)
        except (TypeError, ValueError):
            await self.send_error("latitude and longitude must be numbers")
            return

        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            await self.send_error("Coordinates out of range")
            return

        try:
            await self._update_location(lat, lon)
        except ImplausibleLocationError as exc:
            await self.send_error(str(exc))
            return
        except DeliveryPersonProfile.DoesNotExist:
            await self.send_error("Delivery person profile not found")
            return

        await self.send_success("location_updated", latitude=lat, longitude=lon)

    async def _handle_status_update(self, data: Dict[str, Any]):
        is_online = data.get("is_online")
        if not isinstance(is_online, bool):
            await self.send_error("status_update requires a boolean is_online")
            return

        try:
            await self._set_online(is_online)
        except DeliveryPersonProfile.DoesNotExist:
            await self.send_error("Delivery person profile not found")
            return

        await self.send_success("status_updated", is_online=is_online)

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def order_offer(self, event):
        await self.forward_event(event)

    async def offer_expired(self, event):
        await self.forward_event(event)

    async def offer_withdrawn(self, event):
        await self.forward_event(event)

    async def order_cancelled(self, event):
        await self.forward_event(event)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _update_location(self, lat: float, lon: float):
        profile = DeliveryPersonProfile.objects.get(user_id=self.user_id)
        courier_services.update_location(profile, lat, lon)

    @database_sync_to_async
    def _set_online(self, is_online: bool):
        profile = DeliveryPersonProfile.objects.get(user_id=self.user_id)
        courier_services.set_online_status(profile, is_online)
