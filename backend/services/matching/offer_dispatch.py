"""
Offer dispatch state machine.

An order is offered to one delivery person at a time:
1. Offer created for the best ranked candidate (PENDING, fixed window)
2. Delivery person accepts -> order assigned
3. Delivery person rejects, or the window lapses -> penalty, next candidate
4. No candidate left -> order reported as NO_COURIER_AVAILABLE

Expiry is a predicate over stored timestamps: an offer whose expires_at has
passed is never accepted, whether or not the sweep has marked it yet.
Every transition out of PENDING is a conditional update guarded by the
current status, so concurrent accept/reject/sweep calls resolve an offer
exactly once.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import partial
from typing import List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Exists, F, OuterRef, QuerySet
from django.utils import timezone

from couriers.models import DeliveryPersonProfile
from couriers.services import available_delivery_persons
from orders.models import (
    Order,
    OrderOffer,
    OrderStatus,
    OfferStatus,
    OfferFailureReason,
)
from realtime import notifications
from services.exceptions import (
    OfferAlreadyResolvedError,
    OfferForbiddenError,
    OfferNotFoundError,
    OrderNotFoundError,
)
from .ranking import rank_candidates

logger = logging.getLogger(__name__)

_DISPATCH_DEFAULTS = {
    "OFFER_WINDOW_SECONDS": 60,
    "REJECT_PENALTY": 10,
    "EXPIRE_PENALTY": 5,
    "MAX_PICKUP_DISTANCE_KM": 10,
    "MAX_REJECTIONS_BEFORE_PAUSE": 5,
    "MAX_OFFER_ATTEMPTS": None,
}


def dispatch_setting(name: str):
    return getattr(settings, "DISPATCH", {}).get(name, _DISPATCH_DEFAULTS[name])


class DispatchOutcome(str, enum.Enum):
    OFFERED = "offered"
    ALREADY_PENDING = "already_pending"
    ALREADY_ASSIGNED = "already_assigned"
    NOT_DISPATCHABLE = "not_dispatchable"
    EXHAUSTED = "exhausted"


@dataclass
class DispatchResult:
    outcome: DispatchOutcome
    order: Order
    offer: Optional[OrderOffer] = None

    @property
    def dispatched(self) -> bool:
        return self.outcome == DispatchOutcome.OFFERED


@dataclass
class OfferResponseResult:
    """Result of an accept/reject call."""
    offer: OrderOffer
    order: Order
    message: str = ""
    next_dispatch: Optional[DispatchResult] = None
    paused: bool = False


@dataclass
class SweepResult:
    expired_count: int = 0
    redistributed_order_ids: List[int] = field(default_factory=list)
    dispatched_count: int = 0
    exhausted_count: int = 0
    stranded_count: int = 0


# ===================== Helpers =====================

def remaining_seconds(offer: OrderOffer, now: datetime) -> int:
    """Whole seconds left in the offer window, never negative."""
    return max(0, int((offer.expires_at - now).total_seconds()))


def _after_commit(func, *args, **kwargs):
    transaction.on_commit(partial(func, *args, **kwargs))


def _apply_penalty(delivery_person_id: int, points: int) -> None:
    # Database-side increments: concurrent penalties never overwrite each other
    DeliveryPersonProfile.objects.filter(user_id=delivery_person_id).update(
        rejections_today=F("rejections_today") + 1,
        priority_score=F("priority_score") + points,
    )


def _pause_if_over_limit(delivery_person_id: int) -> bool:
    limit = dispatch_setting("MAX_REJECTIONS_BEFORE_PAUSE")
    if limit is None:
        return False
    paused = DeliveryPersonProfile.objects.filter(
        user_id=delivery_person_id,
        is_online=True,
        rejections_today__gte=limit,
    ).update(is_online=False)
    if paused:
        logger.info("Delivery person %s paused after %s rejections today", delivery_person_id, limit)
    return bool(paused)


def _expire_offer(offer: OrderOffer, now: datetime) -> bool:
    """Move a lapsed PENDING offer to EXPIRED and penalize its target. False if already resolved."""
    updated = OrderOffer.objects.filter(pk=offer.pk, status=OfferStatus.PENDING).update(
        status=OfferStatus.EXPIRED,
        failure_reason=OfferFailureReason.TIMEOUT,
        responded_at=now,
    )
    if not updated:
        return False

    _apply_penalty(offer.delivery_person_id, dispatch_setting("EXPIRE_PENALTY"))
    offer.status = OfferStatus.EXPIRED
    offer.failure_reason = OfferFailureReason.TIMEOUT
    offer.responded_at = now

    logger.info(
        "Offer %s for order %s expired without response from delivery person %s",
        offer.pk, offer.order_id, offer.delivery_person_id,
    )
    _after_commit(
        notifications.notify_courier_event,
        "offer_expired",
        offer.order_id,
        offer.delivery_person_id,
        "Your order offer has timed out.",
    )
    return True


def candidate_pool(order: Order, now: datetime) -> QuerySet:
    """
    Delivery persons eligible for `order` right now.

    On top of the online/not-busy/located filter, skips anyone who already
    rejected or let an offer for this order lapse, and anyone currently
    holding a live offer for another order.
    """
    already_tried = OrderOffer.objects.filter(
        order_id=order.pk,
        status__in=[OfferStatus.REJECTED, OfferStatus.EXPIRED],
    ).values("delivery_person_id")
    holding_offer = OrderOffer.objects.filter(
        status=OfferStatus.PENDING,
        expires_at__gt=now,
    ).exclude(order_id=order.pk).values("delivery_person_id")

    return (
        available_delivery_persons()
        .exclude(user_id__in=already_tried)
        .exclude(user_id__in=holding_offer)
    )


def _mark_exhausted(order: Order, attempts: int) -> DispatchResult:
    Order.objects.filter(
        pk=order.pk,
        status=OrderStatus.PENDING,
        delivery_person__isnull=True,
    ).update(status=OrderStatus.NO_COURIER_AVAILABLE)
    order.status = OrderStatus.NO_COURIER_AVAILABLE

    logger.warning("Order %s has no delivery person available after %s offer(s)", order.pk, attempts)
    _after_commit(notifications.notify_admins_order_exhausted, order.pk, attempts)
    _after_commit(
        notifications.notify_client_event,
        "order_exhausted",
        order.pk,
        "No delivery person is available right now. Our team has been notified.",
    )
    return DispatchResult(DispatchOutcome.EXHAUSTED, order)


# ===================== State machine operations =====================

@transaction.atomic
def dispatch_next_offer(order: Order) -> DispatchResult:
    """
    Offer `order` to the next ranked delivery person.

    No-op when the order is assigned, not PENDING, or already has a live
    PENDING offer. A PENDING offer whose window lapsed is expired first.

    Args:
        order: Order instance (re-read and row-locked here)

    Returns:
        DispatchResult describing what happened
    """
    try:
        order = Order.objects.select_for_update().get(pk=order.pk)
    except Order.DoesNotExist:
        raise OrderNotFoundError(f"Order {order.pk} not found")

    if order.delivery_person_id is not None:
        return DispatchResult(DispatchOutcome.ALREADY_ASSIGNED, order)
    if order.status != OrderStatus.PENDING:
        return DispatchResult(DispatchOutcome.NOT_DISPATCHABLE, order)

    now = timezone.now()

    pending = OrderOffer.objects.filter(order_id=order.pk, status=OfferStatus.PENDING).first()
    if pending is not None:
        if pending.expires_at > now:
            return DispatchResult(DispatchOutcome.ALREADY_PENDING, order, pending)
        # Clear lapsed state before issuing the next offer
        _expire_offer(pending, now)

    attempts = OrderOffer.objects.filter(order_id=order.pk).count()
    max_attempts = dispatch_setting("MAX_OFFER_ATTEMPTS")
    if max_attempts is not None and attempts >= max_attempts:
        return _mark_exhausted(order, attempts)

    ranked = rank_candidates(
        order,
        candidate_pool(order, now),
        max_distance_km=dispatch_setting("MAX_PICKUP_DISTANCE_KM"),
    )
    candidate = next(ranked, None)
    ranked.close()
    if candidate is None:
        return _mark_exhausted(order, attempts)

    window = timedelta(seconds=dispatch_setting("OFFER_WINDOW_SECONDS"))
    try:
        with transaction.atomic():
            offer = OrderOffer.objects.create(
                order=order,
                delivery_person_id=candidate.user_id,
                distance_to_pickup_km=candidate.distance_km,
                attempt_number=attempts + 1,
                status=OfferStatus.PENDING,
                offered_at=now,
                expires_at=now + window,
            )
    except IntegrityError:
        # Lost the race to a concurrent dispatch for the same order
        logger.info("Order %s already received a pending offer concurrently", order.pk)
        existing = OrderOffer.objects.filter(order_id=order.pk, status=OfferStatus.PENDING).first()
        return DispatchResult(DispatchOutcome.ALREADY_PENDING, order, existing)

    logger.info(
        "Offered order %s to delivery person %s (attempt %s, %s km, expires %s)",
        order.pk,
        candidate.user_id,
        offer.attempt_number,
        "?" if candidate.distance_km is None else f"{candidate.distance_km:.2f}",
        offer.expires_at.isoformat(),
    )
    _after_commit(
        notifications.notify_courier_event,
        "order_offer",
        order.pk,
        candidate.user_id,
        "New delivery offer.",
        {
            "offer_id": offer.pk,
            "expires_at": offer.expires_at.isoformat(),
            "remaining_seconds": remaining_seconds(offer, now),
            "distance_to_pickup_km": candidate.distance_km,
        },
    )
    return DispatchResult(DispatchOutcome.OFFERED, order, offer)


def _get_offer_for_response(offer_id: int, delivery_person_id: int, now: datetime) -> OrderOffer:
    offer = OrderOffer.objects.select_related("order").filter(pk=offer_id).first()
    if offer is None:
        raise OfferNotFoundError("Offer not found")

    if offer.delivery_person_id != delivery_person_id:
        logger.warning(
            "Delivery person %s tried to respond to offer %s addressed to %s",
            delivery_person_id, offer_id, offer.delivery_person_id,
        )
        raise OfferForbiddenError("This offer does not belong to you")

    if offer.status != OfferStatus.PENDING:
        raise OfferAlreadyResolvedError(f"This offer was already {offer.status.lower()}")
    if offer.expires_at <= now:
        raise OfferAlreadyResolvedError("This offer has expired")
    return offer


def _lock_order(order_id: int) -> None:
    # Order row first, then the offer: same lock order as dispatch_next_offer
    Order.objects.select_for_update().filter(pk=order_id).first()


@transaction.atomic
def accept_offer(offer_id: int, delivery_person_id: int) -> OfferResponseResult:
    """
    Accept an offer and assign its order to the delivery person.

    Raises:
        OfferNotFoundError: unknown offer
        OfferForbiddenError: offer addressed to someone else
        OfferAlreadyResolvedError: offer resolved, expired, or order taken
    """
    now = timezone.now()
    offer = _get_offer_for_response(offer_id, delivery_person_id, now)
    _lock_order(offer.order_id)

    updated = OrderOffer.objects.filter(
        pk=offer.pk,
        status=OfferStatus.PENDING,
        expires_at__gt=now,
    ).update(status=OfferStatus.ACCEPTED, responded_at=now)
    if not updated:
        raise OfferAlreadyResolvedError("This offer is no longer available")

    assigned = Order.objects.filter(
        pk=offer.order_id,
        status=OrderStatus.PENDING,
        delivery_person__isnull=True,
    ).update(
        status=OrderStatus.ACCEPTED,
        delivery_person_id=delivery_person_id,
        accepted_at=now,
    )
    if not assigned:
        # Rolls back the offer update above
        raise OfferAlreadyResolvedError("This order is no longer available")

    offer.refresh_from_db()
    order = offer.order
    order.refresh_from_db()

    logger.info("Delivery person %s accepted order %s (offer %s)", delivery_person_id, order.pk, offer.pk)
    _after_commit(
        notifications.notify_client_event,
        "order_accepted",
        order.pk,
        "Your order was accepted! The delivery person is on the way to pick it up.",
    )
    return OfferResponseResult(
        offer=offer,
        order=order,
        message="Order accepted! Head to the pickup location.",
    )


@transaction.atomic
def reject_offer(offer_id: int, delivery_person_id: int) -> OfferResponseResult:
    """
    Reject an offer, penalize the delivery person and offer the order to the next candidate.

    Raises:
        OfferNotFoundError: unknown offer
        OfferForbiddenError: offer addressed to someone else
        OfferAlreadyResolvedError: offer already resolved or expired
    """
    now = timezone.now()
    offer = _get_offer_for_response(offer_id, delivery_person_id, now)
    _lock_order(offer.order_id)

    updated = OrderOffer.objects.filter(
        pk=offer.pk,
        status=OfferStatus.PENDING,
        expires_at__gt=now,
    ).update(
        status=OfferStatus.REJECTED,
        failure_reason=OfferFailureReason.REJECTED,
        responded_at=now,
    )
    if not updated:
        raise OfferAlreadyResolvedError("This offer is no longer available")

    _apply_penalty(delivery_person_id, dispatch_setting("REJECT_PENALTY"))
    paused = _pause_if_over_limit(delivery_person_id)
    logger.info("Delivery person %s rejected order %s (offer %s)", delivery_person_id, offer.order_id, offer.pk)

    next_dispatch = dispatch_next_offer(offer.order)

    offer.refresh_from_db()
    message = "Offer declined."
    if paused:
        message += " You were paused for rejecting too many offers today."
    return OfferResponseResult(
        offer=offer,
        order=next_dispatch.order,
        message=message,
        next_dispatch=next_dispatch,
        paused=paused,
    )


def sweep_expired_offers(now: Optional[datetime] = None) -> SweepResult:
    """
    Expire every PENDING offer whose window has closed and redistribute its order.

    Also picks up PENDING, unassigned orders that hold no PENDING offer at
    all, e.g. an order whose first dispatch failed after it was saved.

    Meant to be triggered from outside (Celery beat, cron, management command).
    Running it twice with no new lapses in between changes nothing.
    """
    now = now or timezone.now()
    result = SweepResult()

    lapsed = list(
        OrderOffer.objects.select_related("order")
        .filter(status=OfferStatus.PENDING, expires_at__lt=now)
        .order_by("expires_at")
    )

    for offer in lapsed:
        with transaction.atomic():
            if not _expire_offer(offer, now):
                # Resolved concurrently (accepted, rejected or swept)
                continue
        result.expired_count += 1

        order = offer.order
        if (
            order.status == OrderStatus.PENDING
            and order.delivery_person_id is None
            and order.pk not in result.redistributed_order_ids
        ):
            result.redistributed_order_ids.append(order.pk)

    for order_id in stranded_order_ids():
        if order_id not in result.redistributed_order_ids:
            result.redistributed_order_ids.append(order_id)
            result.stranded_count += 1

    for order_id in result.redistributed_order_ids:
        dispatch = dispatch_next_offer(Order(pk=order_id))
        if dispatch.outcome == DispatchOutcome.OFFERED:
            result.dispatched_count += 1
        elif dispatch.outcome == DispatchOutcome.EXHAUSTED:
            result.exhausted_count += 1

    if result.redistributed_order_ids:
        logger.info(
            "Sweep expired %s offer(s), found %s order(s) without an offer; "
            "redistributed %s order(s), %s offered, %s exhausted",
            result.expired_count,
            result.stranded_count,
            len(result.redistributed_order_ids),
            result.dispatched_count,
            result.exhausted_count,
        )
    elif result.expired_count:
        logger.info("Sweep expired %s offer(s) on orders that no longer need one", result.expired_count)
    return result


def stranded_order_ids() -> List[int]:
    """PENDING, unassigned orders with no PENDING offer, oldest first."""
    pending_offer = OrderOffer.objects.filter(order_id=OuterRef("pk"), status=OfferStatus.PENDING)
    return list(
        Order.objects.filter(status=OrderStatus.PENDING, delivery_person__isnull=True)
        .filter(~Exists(pending_offer))
        .order_by("created_at")
        .values_list("pk", flat=True)
    )


def withdraw_pending_offers(order: Order) -> int:
    """Expire the order's PENDING offers without penalty (order cancelled)."""
    now = timezone.now()
    withdrawn = list(
        OrderOffer.objects.filter(order_id=order.pk, status=OfferStatus.PENDING)
        .values_list("pk", "delivery_person_id")
    )
    count = OrderOffer.objects.filter(
        pk__in=[pk for pk, _ in withdrawn],
        status=OfferStatus.PENDING,
    ).update(
        status=OfferStatus.EXPIRED,
        failure_reason=OfferFailureReason.ORDER_UNAVAILABLE,
        responded_at=now,
    )
    for _, delivery_person_id in withdrawn:
        _after_commit(
            notifications.notify_courier_event,
            "offer_withdrawn",
            order.pk,
            delivery_person_id,
            "This order is no longer available.",
        )
    return count


def pending_offers_for(delivery_person_id: int, now: datetime) -> QuerySet:
    """Live offers for a delivery person, newest first."""
    return (
        OrderOffer.objects.select_related("order", "order__client")
        .filter(
            delivery_person_id=delivery_person_id,
            status=OfferStatus.PENDING,
            expires_at__gt=now,
        )
        .order_by("-offered_at")
    )
