import logging

from django.db.models import Exists, OuterRef
from django.utils import timezone

from couriers.models import DeliveryPersonProfile
from orders.models import Order, ACTIVE_ORDER_STATUSES
from common.utils.geo import detect_fake_gps
from services.exceptions import ImplausibleLocationError

logger = logging.getLogger(__name__)


def active_orders(user_id):
    """Orders currently keeping the delivery person busy."""
    return Order.objects.filter(delivery_person_id=user_id, status__in=ACTIVE_ORDER_STATUSES)


def active_order_count(user_id) -> int:
    return active_orders(user_id).count()


def get_current_order(user_id):
    return active_orders(user_id).order_by("-accepted_at").first()


def available_delivery_persons():
    """
    Profiles that may receive an offer: online, with a known location and
    no order in ACCEPTED / PICKED_UP / IN_TRANSIT.
    """
    busy = Order.objects.filter(
        delivery_person_id=OuterRef("user_id"),
        status__in=ACTIVE_ORDER_STATUSES,
    )
    return (
        DeliveryPersonProfile.objects.select_related("user")
        .filter(
            is_online=True,
            current_latitude__isnull=False,
            current_longitude__isnull=False,
        )
        .exclude(Exists(busy))
    )


# DELIVERY PERSON STATUS UPDATE
def set_online_status(profile: DeliveryPersonProfile, is_online: bool):
    """
    Switch a delivery person online/offline.

    Going online on a new day clears yesterday's rejection count. The
    priority score is left untouched.
    """
    update_fields = ["is_online"]
    profile.is_online = is_online

    if is_online:
        now = timezone.now()
        today = timezone.localdate(now)
        last_reset = profile.rejections_reset_at
        if last_reset is None or timezone.localdate(last_reset) < today:
            profile.rejections_today = 0
            profile.rejections_reset_at = now
            update_fields += ["rejections_today", "rejections_reset_at"]

    profile.save(update_fields=update_fields)
    logger.info("Delivery person %s is now %s", profile.user_id, "online" if is_online else "offline")
    return profile


def update_location(profile: DeliveryPersonProfile, lat, lon):
    """
    Update delivery person location - used by:
    - HTTP fallback
    - WebSocket location_update events

    Raises:
        ImplausibleLocationError: the jump from the last known position is impossible
    """
    now = timezone.now()
    is_fake, reason = detect_fake_gps(
        float(profile.current_latitude) if profile.current_latitude is not None else None,
        float(profile.current_longitude) if profile.current_longitude is not None else None,
        profile.last_location_update,
        float(lat),
        float(lon),
        now,
    )
    if is_fake:
        logger.warning("Rejected location update for delivery person %s: %s", profile.user_id, reason)
        raise ImplausibleLocationError(reason)

    profile.current_latitude = lat
    profile.current_longitude = lon
    profile.last_location_update = now
    profile.save(update_fields=["current_latitude", "current_longitude", "last_location_update"])
    return profile
