"""
Notification helpers for sending WebSocket messages to connected users.

Groups:
- courier_<user_id>: one delivery person (offers, expiry, withdrawals)
- user_<user_id>: one client (order accepted, status changes, exhausted)
- admins: staff watching for orders nobody took

Dispatcher transitions call these after commit. A failed send is logged and
never propagates back into the transition that triggered it.
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

ADMINS_GROUP = "admins"


def courier_group(user_id: int) -> str:
    return f"courier_{user_id}"


def user_group(user_id: int) -> str:
    return f"user_{user_id}"


def _order_payload(order_id: int) -> Dict[str, Any] | None:
    from orders.models import Order
    from orders.serializers import OrderSerializer

    order = Order.objects.select_related("client", "delivery_person").filter(pk=order_id).first()
    if order is None:
        return None
    return OrderSerializer(order).data


def _send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    try:
        logger.debug("WS -> %s: %s", group, payload)
        async_to_sync(channel_layer.group_send)(group, payload)
    except Exception:
        logger.exception("Failed to send %s to group %s", payload.get("type"), group)
        return False
    return True


def notify_courier_event(
    event_type: str,
    order_id: int,
    delivery_person_id: int | None,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send an event to one delivery person through courier_<id>.

    Args:
        event_type: Handler name in the consumer (order_offer, offer_expired, offer_withdrawn)
        order_id: Order the event is about
        delivery_person_id: Target user id
        message: Optional message to include
        extra: Additional payload data

    Returns:
        True if sent, False otherwise
    """
    if not delivery_person_id:
        return False

    payload = {
        "type": event_type,
        "order_id": order_id,
        "order_data": _order_payload(order_id),
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return _send(courier_group(delivery_person_id), payload)


def notify_client_event(
    event_type: str,
    order_id: int,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """Send an order event to the client who placed it, through user_<client_id>."""
    order_data = _order_payload(order_id)
    if order_data is None:
        return False

    payload = {
        "type": event_type,
        "order_id": order_id,
        "status": order_data["status"],
        "order_data": order_data,
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return _send(user_group(order_data["client"]["id"]), payload)


def notify_admins_order_exhausted(order_id: int, attempts: int) -> bool:
    return _send(ADMINS_GROUP, {
        "type": "order_exhausted",
        "order_id": order_id,
        "attempts": attempts,
        "order_data": _order_payload(order_id),
        "message": f"Order #{order_id} needs manual dispatch: no delivery person accepted it.",
    })
