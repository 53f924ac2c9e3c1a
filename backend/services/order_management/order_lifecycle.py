"""
Core order lifecycle operations.

Order creation (geocode -> route -> price -> persist -> dispatch), payment
confirmation, cancellation, delivery progress and admin redispatch. Offer
state is only ever touched through services.matching.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from accounts.models import User
from orders.models import (
    Order,
    OrderStatus,
    PaymentMethod,
    DIRECT_PAYMENT_METHODS,
)
from realtime import notifications
from services.exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    OrderForbiddenError,
    OrderNotFoundError,
)
from services.geocoding import Coordinates, GeocodingGateway, RouteEstimate, get_geocoding_gateway
from services.matching import DispatchResult, dispatch_next_offer, withdraw_pending_offers
from services.pricing import PriceQuote, quote_order_price

logger = logging.getLogger(__name__)

FINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

# Progress a delivery person (or admin) reports once the order is assigned
PROGRESS_TRANSITIONS = {
    OrderStatus.ACCEPTED: OrderStatus.PICKED_UP,
    OrderStatus.PICKED_UP: OrderStatus.IN_TRANSIT,
    OrderStatus.IN_TRANSIT: OrderStatus.DELIVERED,
}

PROGRESS_TIMESTAMPS = {
    OrderStatus.PICKED_UP: "picked_up_at",
    OrderStatus.IN_TRANSIT: "in_transit_at",
    OrderStatus.DELIVERED: "completed_at",
}


@dataclass
class OrderQuote:
    """Priced route between two addresses; nothing persisted."""
    origin: Coordinates
    destination: Coordinates
    route: RouteEstimate
    distance_km: Decimal
    price: PriceQuote


@dataclass
class OrderResult:
    """Result object for order operations."""
    order: Order
    message: str = ""
    dispatch: Optional[DispatchResult] = None


# ===================== Quoting & creation =====================

def quote_order(
    origin_address: str,
    destination_address: str,
    gateway: Optional[GeocodingGateway] = None,
) -> OrderQuote:
    """
    Geocode both addresses, route between them and price the route.

    Raises:
        InvalidInputError: blank address
        AddressNotFoundError / RouteNotFoundError: provider has no answer
        UpstreamUnavailableError: provider failed
    """
    if not origin_address or not origin_address.strip():
        raise InvalidInputError("Origin address is required")
    if not destination_address or not destination_address.strip():
        raise InvalidInputError("Destination address is required")

    gateway = gateway or get_geocoding_gateway()
    origin = gateway.geocode(origin_address.strip())
    destination = gateway.geocode(destination_address.strip())
    route = gateway.route(origin, destination)

    distance_km = Decimal(str(route.distance_km)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return OrderQuote(
        origin=origin,
        destination=destination,
        route=route,
        distance_km=distance_km,
        price=quote_order_price(distance_km),
    )


def create_order(
    client,
    origin_address: str,
    destination_address: str,
    payment_method: str = PaymentMethod.CREDIT_CARD,
    notes: str = "",
    gateway: Optional[GeocodingGateway] = None,
) -> OrderResult:
    """
    Create a priced order and, when payment needs no confirmation, dispatch it.

    Provider failures abort before anything is written.

    Args:
        client: User placing the order
        origin_address: Pickup address
        destination_address: Drop-off address
        payment_method: PaymentMethod value
        notes: Free text for the delivery person
        gateway: Maps provider override (defaults to settings.GEOCODING_GATEWAY)

    Returns:
        OrderResult with the created order and the first dispatch outcome
    """
    if payment_method not in PaymentMethod.values:
        raise InvalidInputError(f"Unknown payment method {payment_method!r}")

    quote = quote_order(origin_address, destination_address, gateway=gateway)

    initial_status = (
        OrderStatus.PENDING if payment_method in DIRECT_PAYMENT_METHODS
        else OrderStatus.AWAITING_PAYMENT
    )

    with transaction.atomic():
        order = Order.objects.create(
            client=client,
            origin_address=origin_address.strip(),
            origin_latitude=round(quote.origin.latitude, 6),
            origin_longitude=round(quote.origin.longitude, 6),
            destination_address=destination_address.strip(),
            destination_latitude=round(quote.destination.latitude, 6),
            destination_longitude=round(quote.destination.longitude, 6),
            distance_km=quote.distance_km,
            duration_minutes=round(quote.route.duration_minutes),
            notes=notes or "",
            delivery_fee=quote.price.delivery_fee,
            platform_fee=quote.price.platform_fee,
            price=quote.price.price,
            payment_method=payment_method,
            status=initial_status,
        )
    logger.info(
        "Order %s created by %s: %s km, price %s (%s)",
        order.pk, client.pk, quote.distance_km, quote.price.price, initial_status,
    )

    if initial_status == OrderStatus.AWAITING_PAYMENT:
        return OrderResult(order=order, message="Order created. Waiting for payment confirmation.")

    dispatch = dispatch_next_offer(order)
    return OrderResult(order=dispatch.order, message=_dispatch_message(dispatch), dispatch=dispatch)


def _dispatch_message(dispatch: DispatchResult) -> str:
    if dispatch.dispatched:
        return "Looking for a delivery person..."
    if dispatch.order.status == OrderStatus.NO_COURIER_AVAILABLE:
        return "No delivery person is available right now. Our team has been notified."
    return ""


# ===================== Access & queries =====================

def _can_view(user, order: Order) -> bool:
    return (
        user.is_admin_role
        or order.client_id == user.pk
        or order.delivery_person_id == user.pk
    )


def get_order_for_user(user, order_id: int) -> Order:
    order = Order.objects.select_related("client", "delivery_person").filter(pk=order_id).first()
    if order is None:
        raise OrderNotFoundError("Order not found")
    if not _can_view(user, order):
        raise OrderForbiddenError("You do not have access to this order")
    return order


def list_orders_for_user(user):
    qs = Order.objects.select_related("client", "delivery_person")
    if user.is_admin_role:
        return qs
    if user.is_delivery_person:
        return qs.filter(delivery_person=user)
    return qs.filter(client=user)


def exhausted_orders():
    """Orders no delivery person took, oldest first."""
    return (
        Order.objects.select_related("client")
        .filter(status=OrderStatus.NO_COURIER_AVAILABLE)
        .order_by("created_at")
    )


def delivery_history(user):
    return Order.objects.filter(delivery_person=user, status=OrderStatus.DELIVERED).order_by("-completed_at")


# ===================== Transitions =====================

@transaction.atomic
def cancel_order(user, order_id: int) -> OrderResult:
    """
    Cancel an order from any non-final status.

    Clients cancel their own orders, admins any order. A live offer is
    withdrawn without penalizing the delivery person it was made to.
    """
    try:
        order = Order.objects.select_for_update().get(pk=order_id)
    except Order.DoesNotExist:
        raise OrderNotFoundError("Order not found")

    if not (user.is_admin_role or order.client_id == user.pk):
        raise OrderForbiddenError("Only the client who placed the order can cancel it")

    if order.status in FINAL_STATUSES:
        raise InvalidTransitionError(f"Cannot cancel - order is already {order.status.lower()}")

    now = timezone.now()
    updated = Order.objects.filter(pk=order.pk, status=order.status).update(
        status=OrderStatus.CANCELLED,
        cancelled_at=now,
    )
    if not updated:
        raise InvalidTransitionError("Order changed while cancelling, please retry")

    withdrawn = withdraw_pending_offers(order)
    order.refresh_from_db()

    logger.info("Order %s cancelled by user %s (%s pending offer(s) withdrawn)", order.pk, user.pk, withdrawn)

    if order.delivery_person_id:
        transaction.on_commit(lambda: notifications.notify_courier_event(
            "order_cancelled", order.pk, order.delivery_person_id, "The client cancelled this order."
        ))
    transaction.on_commit(lambda: notifications.notify_client_event(
        "order_status_changed", order.pk, "Order cancelled."
    ))
    return OrderResult(order=order, message="Order cancelled successfully")


@transaction.atomic
def advance_order_status(user, order_id: int, new_status: str) -> OrderResult:
    """
    Move an assigned order forward: ACCEPTED -> PICKED_UP -> IN_TRANSIT -> DELIVERED.

    Only the assigned delivery person or an admin may do this, one step at a time.
    """
    try:
        order = Order.objects.select_for_update().get(pk=order_id)
    except Order.DoesNotExist:
        raise OrderNotFoundError("Order not found")

    if not (user.is_admin_role or order.delivery_person_id == user.pk):
        raise OrderForbiddenError("Only the assigned delivery person can update this order")

    expected = PROGRESS_TRANSITIONS.get(order.status)
    if expected is None or expected != new_status:
        raise InvalidTransitionError(f"Cannot move order from {order.status} to {new_status}")

    now = timezone.now()
    updated = Order.objects.filter(pk=order.pk, status=order.status).update(
        status=new_status,
        **{PROGRESS_TIMESTAMPS[new_status]: now},
    )
    if not updated:
        raise InvalidTransitionError("Order changed while updating, please retry")

    if new_status == OrderStatus.DELIVERED:
        User.objects.filter(pk__in=[order.client_id, order.delivery_person_id]).update(
            completed_deliveries=F("completed_deliveries") + 1
        )

    order.refresh_from_db()
    logger.info("Order %s moved to %s by user %s", order.pk, new_status, user.pk)
    transaction.on_commit(lambda: notifications.notify_client_event(
        "order_status_changed", order.pk, f"Your order is now {order.get_status_display().lower()}."
    ))
    return OrderResult(order=order, message=f"Order status updated to {new_status}")


def _reopen_for_dispatch(order_id: int, from_status: str, log_message: str) -> OrderResult:
    with transaction.atomic():
        try:
            order = Order.objects.select_for_update().get(pk=order_id)
        except Order.DoesNotExist:
            raise OrderNotFoundError("Order not found")

        if order.status != from_status:
            raise InvalidTransitionError(f"Order is {order.status}, expected {from_status}")

        updated = Order.objects.filter(pk=order.pk, status=from_status).update(status=OrderStatus.PENDING)
        if not updated:
            raise InvalidTransitionError("Order changed concurrently, please retry")
        logger.info(log_message, order.pk)

    dispatch = dispatch_next_offer(order)
    return OrderResult(order=dispatch.order, message=_dispatch_message(dispatch), dispatch=dispatch)


def confirm_payment(order_id: int) -> OrderResult:
    """AWAITING_PAYMENT -> PENDING, then dispatch."""
    return _reopen_for_dispatch(order_id, OrderStatus.AWAITING_PAYMENT, "Payment confirmed for order %s")


def redispatch_order(order_id: int) -> OrderResult:
    """
    Admin retry of an order nobody took: NO_COURIER_AVAILABLE -> PENDING, then dispatch.

    Delivery persons who already declined or ignored this order are still skipped.
    """
    return _reopen_for_dispatch(order_id, OrderStatus.NO_COURIER_AVAILABLE, "Order %s reopened for dispatch")
