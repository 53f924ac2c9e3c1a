from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.utils import timezone

from couriers.models import DeliveryPersonProfile
from orders.models import (
    OfferFailureReason,
    OfferStatus,
    OrderOffer,
    OrderStatus,
)
from services.exceptions import (
    OfferAlreadyResolvedError,
    OfferForbiddenError,
    OfferNotFoundError,
)
from services.matching import offer_dispatch
from services.matching import (
    DispatchOutcome,
    RankedCandidate,
    accept_offer,
    dispatch_next_offer,
    reject_offer,
    sweep_expired_offers,
)
from .helpers import make_client, make_courier, make_order

DISPATCH_SETTINGS = {
    "OFFER_WINDOW_SECONDS": 60,
    "REJECT_PENALTY": 10,
    "EXPIRE_PENALTY": 5,
    "MAX_PICKUP_DISTANCE_KM": 10,
    "MAX_REJECTIONS_BEFORE_PAUSE": 5,
    "MAX_OFFER_ATTEMPTS": None,
}


def lapse(offer, seconds_ago=5):
    """Move an offer's window into the past."""
    now = timezone.now()
    OrderOffer.objects.filter(pk=offer.pk).update(
        offered_at=now - timedelta(seconds=60 + seconds_ago),
        expires_at=now - timedelta(seconds=seconds_ago),
    )


@override_settings(DISPATCH=DISPATCH_SETTINGS)
class DispatchNextOfferTests(TestCase):

    def setUp(self):
        self.client_user = make_client()
        self.order = make_order(self.client_user)

    def test_offers_best_candidate_with_fixed_window(self):
        make_courier("far", km_north=6)
        near = make_courier("near", km_north=1)

        result = dispatch_next_offer(self.order)

        self.assertEqual(result.outcome, DispatchOutcome.OFFERED)
        offer = result.offer
        self.assertEqual(offer.delivery_person_id, near.pk)
        self.assertEqual(offer.status, OfferStatus.PENDING)
        self.assertEqual(offer.attempt_number, 1)
        self.assertEqual(offer.expires_at - offer.offered_at, timedelta(seconds=60))

    def test_second_call_keeps_the_live_offer(self):
        make_courier("one", km_north=1)
        make_courier("two", km_north=2)

        first = dispatch_next_offer(self.order)
        second = dispatch_next_offer(self.order)

        self.assertEqual(second.outcome, DispatchOutcome.ALREADY_PENDING)
        self.assertEqual(second.offer.pk, first.offer.pk)
        self.assertEqual(self.order.offers.count(), 1)

    def test_assigned_order_is_left_alone(self):
        courier = make_courier("assigned")
        make_courier("other")
        order = make_order(self.client_user, status=OrderStatus.ACCEPTED, delivery_person=courier)

        result = dispatch_next_offer(order)

        self.assertEqual(result.outcome, DispatchOutcome.ALREADY_ASSIGNED)
        self.assertFalse(order.offers.exists())

    def test_order_awaiting_payment_is_not_dispatched(self):
        make_courier("idle")
        order = make_order(self.client_user, status=OrderStatus.AWAITING_PAYMENT)

        result = dispatch_next_offer(order)

        self.assertEqual(result.outcome, DispatchOutcome.NOT_DISPATCHABLE)
        self.assertFalse(order.offers.exists())

    def test_empty_pool_exhausts_order_without_offer(self):
        result = dispatch_next_offer(self.order)

        self.assertEqual(result.outcome, DispatchOutcome.EXHAUSTED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.NO_COURIER_AVAILABLE)
        self.assertFalse(self.order.offers.exists())

    @patch("realtime.notifications.notify_client_event")
    @patch("realtime.notifications.notify_admins_order_exhausted")
    def test_exhausted_order_is_reported_to_admins_after_commit(self, mock_admins, mock_client):
        with self.captureOnCommitCallbacks(execute=True):
            dispatch_next_offer(self.order)

        mock_admins.assert_called_once_with(self.order.pk, 0)
        mock_client.assert_called_once()

    @patch("realtime.notifications.notify_courier_event")
    def test_offer_notification_waits_for_commit(self, mock_notify):
        courier = make_courier("notified")

        with self.captureOnCommitCallbacks() as callbacks:
            dispatch_next_offer(self.order)
            mock_notify.assert_not_called()

        for callback in callbacks:
            callback()
        args = mock_notify.call_args[0]
        self.assertEqual(args[:3], ("order_offer", self.order.pk, courier.pk))

    def test_pool_skips_offline_busy_distant_and_located_nowhere(self):
        make_courier("offline", km_north=1, is_online=False)
        make_courier("distant", km_north=12)
        busy = make_courier("busy", km_north=1)
        make_order(self.client_user, status=OrderStatus.PICKED_UP, delivery_person=busy)
        nowhere = make_courier("nowhere")
        DeliveryPersonProfile.objects.filter(user=nowhere).update(current_latitude=None, current_longitude=None)
        eligible = make_courier("eligible", km_north=9)

        result = dispatch_next_offer(self.order)

        self.assertEqual(result.offer.delivery_person_id, eligible.pk)

    def test_pool_skips_courier_holding_another_live_offer(self):
        holder = make_courier("holder", km_north=1)
        free = make_courier("free", km_north=3)
        other_order = make_order(self.client_user)
        self.assertEqual(dispatch_next_offer(other_order).offer.delivery_person_id, holder.pk)

        result = dispatch_next_offer(self.order)

        self.assertEqual(result.offer.delivery_person_id, free.pk)

    def test_lapsed_offer_is_expired_with_penalty_before_next_offer(self):
        first = make_courier("first", km_north=1)
        second = make_courier("second", km_north=2)
        stale = dispatch_next_offer(self.order).offer
        lapse(stale)

        result = dispatch_next_offer(self.order)

        stale.refresh_from_db()
        self.assertEqual(stale.status, OfferStatus.EXPIRED)
        self.assertEqual(stale.failure_reason, OfferFailureReason.TIMEOUT)
        self.assertEqual(result.outcome, DispatchOutcome.OFFERED)
        self.assertEqual(result.offer.delivery_person_id, second.pk)
        self.assertEqual(result.offer.attempt_number, 2)
        profile = DeliveryPersonProfile.objects.get(user=first)
        self.assertEqual(profile.priority_score, 5)
        self.assertEqual(profile.rejections_today, 1)

    @override_settings(DISPATCH={**DISPATCH_SETTINGS, "MAX_OFFER_ATTEMPTS": 1})
    def test_attempt_ceiling_exhausts_order(self):
        make_courier("first", km_north=1)
        make_courier("second", km_north=2)
        lapse(dispatch_next_offer(self.order).offer)

        result = dispatch_next_offer(self.order)

        self.assertEqual(result.outcome, DispatchOutcome.EXHAUSTED)
        self.assertEqual(self.order.offers.count(), 1)

    def test_concurrent_pending_offer_is_reported_as_already_pending(self):
        courier = make_courier("courier", km_north=1)
        rival = make_courier("rival", km_north=2)

        def rank_while_another_worker_dispatches(order, pool, max_distance_km=None):
            # A PENDING offer appears after the live-offer check, before the insert
            now = timezone.now()
            OrderOffer.objects.create(
                order=order,
                delivery_person=rival,
                status=OfferStatus.PENDING,
                offered_at=now,
                expires_at=now + timedelta(seconds=60),
            )
            yield RankedCandidate(profile=DeliveryPersonProfile.objects.get(user=courier), distance_km=1.0)

        with patch.object(offer_dispatch, "rank_candidates", side_effect=rank_while_another_worker_dispatches):
            result = dispatch_next_offer(self.order)

        self.assertEqual(result.outcome, DispatchOutcome.ALREADY_PENDING)
        self.assertEqual(result.offer.delivery_person_id, rival.pk)
        self.assertEqual(self.order.offers.filter(status=OfferStatus.PENDING).count(), 1)
        self.assertFalse(self.order.offers.filter(delivery_person=courier).exists())


@override_settings(DISPATCH=DISPATCH_SETTINGS)
class OfferResponseTests(TestCase):

    def setUp(self):
        self.client_user = make_client()
        self.order = make_order(self.client_user)
        self.first = make_courier("first", km_north=1)
        self.second = make_courier("second", km_north=2)
        self.offer = dispatch_next_offer(self.order).offer

    def test_accept_assigns_order(self):
        result = accept_offer(self.offer.pk, self.first.pk)

        self.order.refresh_from_db()
        self.assertEqual(result.offer.status, OfferStatus.ACCEPTED)
        self.assertIsNotNone(result.offer.responded_at)
        self.assertEqual(self.order.status, OrderStatus.ACCEPTED)
        self.assertEqual(self.order.delivery_person_id, self.first.pk)
        self.assertIsNotNone(self.order.accepted_at)

    def test_accept_after_window_fails_even_without_sweep(self):
        later = self.offer.offered_at + timedelta(seconds=61)

        with patch("django.utils.timezone.now", return_value=later):
            with self.assertRaises(OfferAlreadyResolvedError):
                accept_offer(self.offer.pk, self.first.pk)

        self.order.refresh_from_db()
        self.assertIsNone(self.order.delivery_person_id)
        self.assertEqual(self.order.status, OrderStatus.PENDING)

    def test_accept_at_exact_expiry_fails(self):
        with patch("django.utils.timezone.now", return_value=self.offer.expires_at):
            with self.assertRaises(OfferAlreadyResolvedError):
                accept_offer(self.offer.pk, self.first.pk)

    def test_accept_by_someone_else_is_forbidden(self):
        with self.assertRaises(OfferForbiddenError):
            accept_offer(self.offer.pk, self.second.pk)

        self.offer.refresh_from_db()
        self.assertEqual(self.offer.status, OfferStatus.PENDING)

    def test_unknown_offer(self):
        with self.assertRaises(OfferNotFoundError):
            accept_offer(self.offer.pk + 1000, self.first.pk)

    def test_second_response_is_rejected(self):
        accept_offer(self.offer.pk, self.first.pk)

        with self.assertRaises(OfferAlreadyResolvedError):
            accept_offer(self.offer.pk, self.first.pk)
        with self.assertRaises(OfferAlreadyResolvedError):
            reject_offer(self.offer.pk, self.first.pk)

    def test_reject_penalizes_and_offers_next_candidate(self):
        result = reject_offer(self.offer.pk, self.first.pk)

        self.offer.refresh_from_db()
        self.assertEqual(self.offer.status, OfferStatus.REJECTED)
        self.assertEqual(self.offer.failure_reason, OfferFailureReason.REJECTED)

        profile = DeliveryPersonProfile.objects.get(user=self.first)
        self.assertEqual(profile.rejections_today, 1)
        self.assertEqual(profile.priority_score, 10)

        self.assertEqual(result.next_dispatch.outcome, DispatchOutcome.OFFERED)
        next_offer = result.next_dispatch.offer
        self.assertEqual(next_offer.delivery_person_id, self.second.pk)
        self.assertEqual(next_offer.status, OfferStatus.PENDING)
        self.assertFalse(result.paused)

    def test_rejecting_courier_is_not_offered_the_order_again(self):
        reject_offer(self.offer.pk, self.first.pk)
        second_offer = self.order.offers.get(status=OfferStatus.PENDING)

        result = reject_offer(second_offer.pk, self.second.pk)

        self.assertEqual(result.next_dispatch.outcome, DispatchOutcome.EXHAUSTED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.NO_COURIER_AVAILABLE)

    def test_reject_after_window_fails(self):
        lapse(self.offer)

        with self.assertRaises(OfferAlreadyResolvedError):
            reject_offer(self.offer.pk, self.first.pk)

        profile = DeliveryPersonProfile.objects.get(user=self.first)
        self.assertEqual(profile.priority_score, 0)

    def test_fifth_rejection_of_the_day_pauses_courier(self):
        DeliveryPersonProfile.objects.filter(user=self.first).update(rejections_today=4)

        result = reject_offer(self.offer.pk, self.first.pk)

        self.assertTrue(result.paused)
        profile = DeliveryPersonProfile.objects.get(user=self.first)
        self.assertFalse(profile.is_online)
        self.assertEqual(profile.rejections_today, 5)

    def _record_order_lock(self):
        seen = []
        lock_order = offer_dispatch._lock_order

        def record(order_id):
            seen.append((order_id, OrderOffer.objects.get(pk=self.offer.pk).status))
            lock_order(order_id)

        return seen, patch.object(offer_dispatch, "_lock_order", side_effect=record)

    def test_accept_locks_order_before_resolving_offer(self):
        seen, lock_patch = self._record_order_lock()

        with lock_patch:
            accept_offer(self.offer.pk, self.first.pk)

        self.assertEqual(seen, [(self.order.pk, OfferStatus.PENDING)])

    def test_reject_locks_order_before_resolving_offer(self):
        seen, lock_patch = self._record_order_lock()

        with lock_patch:
            reject_offer(self.offer.pk, self.first.pk)

        self.assertEqual(seen, [(self.order.pk, OfferStatus.PENDING)])


@override_settings(DISPATCH=DISPATCH_SETTINGS)
class SweepExpiredOffersTests(TestCase):

    def setUp(self):
        self.client_user = make_client()
        self.first = make_courier("first", km_north=1)
        self.second = make_courier("second", km_north=2)

    def test_sweep_expires_penalizes_and_redistributes(self):
        order = make_order(self.client_user)
        offer = dispatch_next_offer(order).offer
        lapse(offer)

        result = sweep_expired_offers()

        offer.refresh_from_db()
        self.assertEqual(offer.status, OfferStatus.EXPIRED)
        self.assertEqual(offer.failure_reason, OfferFailureReason.TIMEOUT)
        self.assertEqual(result.expired_count, 1)
        self.assertEqual(result.redistributed_order_ids, [order.pk])
        self.assertEqual(result.dispatched_count, 1)
        self.assertEqual(result.exhausted_count, 0)

        profile = DeliveryPersonProfile.objects.get(user=self.first)
        self.assertEqual(profile.priority_score, 5)
        self.assertEqual(profile.rejections_today, 1)
        self.assertEqual(order.offers.get(status=OfferStatus.PENDING).delivery_person_id, self.second.pk)

    def test_second_sweep_is_a_no_op(self):
        order = make_order(self.client_user)
        lapse(dispatch_next_offer(order).offer)
        sweep_expired_offers()

        result = sweep_expired_offers()

        self.assertEqual(result.expired_count, 0)
        self.assertEqual(result.redistributed_order_ids, [])
        self.assertEqual(order.offers.count(), 2)
        profile = DeliveryPersonProfile.objects.get(user=self.first)
        self.assertEqual(profile.priority_score, 5)

    def test_live_offers_are_untouched(self):
        order = make_order(self.client_user)
        offer = dispatch_next_offer(order).offer

        result = sweep_expired_offers()

        offer.refresh_from_db()
        self.assertEqual(offer.status, OfferStatus.PENDING)
        self.assertEqual(result.expired_count, 0)

    def test_last_candidate_lapsing_exhausts_order(self):
        order = make_order(self.client_user)
        lapse(dispatch_next_offer(order).offer)
        sweep_expired_offers()
        lapse(order.offers.get(status=OfferStatus.PENDING))

        result = sweep_expired_offers()

        self.assertEqual(result.exhausted_count, 1)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.NO_COURIER_AVAILABLE)

    def test_offer_for_cancelled_order_is_expired_but_not_redistributed(self):
        order = make_order(self.client_user)
        offer = dispatch_next_offer(order).offer
        lapse(offer)
        order.status = OrderStatus.CANCELLED
        order.save(update_fields=["status"])

        result = sweep_expired_offers()

        self.assertEqual(result.expired_count, 1)
        self.assertEqual(result.redistributed_order_ids, [])

    def test_sweep_offers_pending_order_that_never_got_an_offer(self):
        order = make_order(self.client_user)

        result = sweep_expired_offers()

        self.assertEqual(result.expired_count, 0)
        self.assertEqual(result.stranded_count, 1)
        self.assertEqual(result.redistributed_order_ids, [order.pk])
        self.assertEqual(result.dispatched_count, 1)
        self.assertEqual(order.offers.get().delivery_person_id, self.first.pk)

        again = sweep_expired_offers()

        self.assertEqual(again.redistributed_order_ids, [])
        self.assertEqual(order.offers.count(), 1)

    def test_orders_that_need_no_offer_are_not_swept_up(self):
        make_order(self.client_user, status=OrderStatus.AWAITING_PAYMENT)
        make_order(self.client_user, status=OrderStatus.NO_COURIER_AVAILABLE)
        make_order(self.client_user, status=OrderStatus.ACCEPTED, delivery_person=self.second)
        with_live_offer = make_order(self.client_user)
        dispatch_next_offer(with_live_offer)

        result = sweep_expired_offers()

        self.assertEqual(result.redistributed_order_ids, [])
        self.assertEqual(result.stranded_count, 0)
        self.assertEqual(with_live_offer.offers.count(), 1)


class PenaltyTests(TestCase):

    def test_penalties_are_applied_in_the_database(self):
        courier = make_courier("courier")
        stale = DeliveryPersonProfile.objects.get(user=courier)

        offer_dispatch._apply_penalty(courier.pk, 10)
        offer_dispatch._apply_penalty(courier.pk, 10)

        self.assertEqual(stale.priority_score, 0)
        stale.refresh_from_db()
        self.assertEqual(stale.priority_score, 20)
        self.assertEqual(stale.rejections_today, 2)
