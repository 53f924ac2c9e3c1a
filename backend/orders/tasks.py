"""Celery tasks for order dispatch background processing."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def sweep_expired_offers_task():
    """
    Expire lapsed offers and offer their orders, along with any PENDING order
    left without an offer, to the next delivery person.

    Scheduled by Celery beat (CELERY_BEAT_SCHEDULE). Safe to run concurrently
    with itself and with accept/reject calls.
    """
    from services.matching import sweep_expired_offers

    result = sweep_expired_offers()
    return {
        "expired_count": result.expired_count,
        "redistributed_order_ids": result.redistributed_order_ids,
        "dispatched_count": result.dispatched_count,
        "exhausted_count": result.exhausted_count,
        "stranded_count": result.stranded_count,
    }
