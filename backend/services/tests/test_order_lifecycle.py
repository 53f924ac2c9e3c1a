from decimal import Decimal
from unittest.mock import patch

from django.db import OperationalError
from django.test import TestCase

from accounts.models import User, UserRole
from couriers.models import DeliveryPersonProfile
from orders.models import (
    Order,
    OfferFailureReason,
    OfferStatus,
    OrderStatus,
    PaymentMethod,
)
from services.exceptions import (
    AddressNotFoundError,
    InvalidTransitionError,
    OrderForbiddenError,
    UpstreamUnavailableError,
)
from services.matching import accept_offer, dispatch_next_offer, sweep_expired_offers
from services import order_management
from .helpers import FakeGateway, make_client, make_courier, make_order


class CreateOrderTests(TestCase):

    def setUp(self):
        self.client_user = make_client()

    def test_direct_payment_order_is_priced_and_dispatched(self):
        courier = make_courier("courier", km_north=1)

        result = order_management.create_order(
            self.client_user,
            "Praca da Se, Sao Paulo",
            "Avenida Paulista 1000, Sao Paulo",
            payment_method=PaymentMethod.CASH,
            gateway=FakeGateway(distance_km=10.0, duration_minutes=24.6),
        )

        order = result.order
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.distance_km, Decimal("10.00"))
        self.assertEqual(order.duration_minutes, 25)
        self.assertEqual(order.delivery_fee, Decimal("25.00"))
        self.assertEqual(order.platform_fee, Decimal("5.00"))
        self.assertEqual(order.price, Decimal("30.00"))
        self.assertEqual(order.offers.get().delivery_person_id, courier.pk)

    def test_card_payment_waits_for_confirmation(self):
        make_courier("courier", km_north=1)

        result = order_management.create_order(
            self.client_user, "A", "B",
            payment_method=PaymentMethod.CREDIT_CARD,
            gateway=FakeGateway(),
        )

        self.assertEqual(result.order.status, OrderStatus.AWAITING_PAYMENT)
        self.assertFalse(result.order.offers.exists())

        confirmed = order_management.confirm_payment(result.order.pk)

        self.assertEqual(confirmed.order.status, OrderStatus.PENDING)
        self.assertTrue(confirmed.dispatch.dispatched)

    def test_geocoding_failure_writes_nothing(self):
        for error in (AddressNotFoundError("nope"), UpstreamUnavailableError("down")):
            with self.subTest(error=type(error).__name__):
                with self.assertRaises(type(error)):
                    order_management.create_order(
                        self.client_user, "A", "B",
                        payment_method=PaymentMethod.CASH,
                        gateway=FakeGateway(error=error),
                    )
        self.assertFalse(Order.objects.exists())

    def test_quote_writes_nothing(self):
        quote = order_management.quote_order("A", "B", gateway=FakeGateway(distance_km=3.456))

        self.assertEqual(quote.distance_km, Decimal("3.46"))
        self.assertEqual(quote.price.delivery_fee, Decimal("11.92"))
        self.assertFalse(Order.objects.exists())

    @patch("services.order_management.order_lifecycle.get_geocoding_gateway")
    def test_configured_gateway_is_used_by_default(self, mock_get_gateway):
        mock_get_gateway.return_value = FakeGateway()

        order_management.quote_order("A", "B")

        mock_get_gateway.assert_called_once_with()


class CancelOrderTests(TestCase):

    def setUp(self):
        self.client_user = make_client()
        self.courier = make_courier("courier", km_north=1)
        self.order = make_order(self.client_user)

    def test_cancel_withdraws_live_offer_without_penalty(self):
        offer = dispatch_next_offer(self.order).offer

        result = order_management.cancel_order(self.client_user, self.order.pk)

        self.assertEqual(result.order.status, OrderStatus.CANCELLED)
        self.assertIsNotNone(result.order.cancelled_at)
        offer.refresh_from_db()
        self.assertEqual(offer.status, OfferStatus.EXPIRED)
        self.assertEqual(offer.failure_reason, OfferFailureReason.ORDER_UNAVAILABLE)
        profile = DeliveryPersonProfile.objects.get(user=self.courier)
        self.assertEqual(profile.priority_score, 0)
        self.assertEqual(profile.rejections_today, 0)

    def test_only_owner_or_admin_can_cancel(self):
        stranger = make_client("stranger")
        admin = User.objects.create_user(username="admin", password="x", role=UserRole.ADMIN)

        with self.assertRaises(OrderForbiddenError):
            order_management.cancel_order(stranger, self.order.pk)

        result = order_management.cancel_order(admin, self.order.pk)
        self.assertEqual(result.order.status, OrderStatus.CANCELLED)

    def test_cannot_cancel_twice(self):
        order_management.cancel_order(self.client_user, self.order.pk)

        with self.assertRaises(InvalidTransitionError):
            order_management.cancel_order(self.client_user, self.order.pk)


class DeliveryProgressTests(TestCase):

    def setUp(self):
        self.client_user = make_client()
        self.courier = make_courier("courier", km_north=1)
        self.order = make_order(self.client_user)
        accept_offer(dispatch_next_offer(self.order).offer.pk, self.courier.pk)

    def test_full_progress_to_delivered(self):
        for new_status in (OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED):
            order_management.advance_order_status(self.courier, self.order.pk, new_status)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DELIVERED)
        self.assertIsNotNone(self.order.picked_up_at)
        self.assertIsNotNone(self.order.in_transit_at)
        self.assertIsNotNone(self.order.completed_at)
        self.courier.refresh_from_db()
        self.assertEqual(self.courier.completed_deliveries, 1)

    def test_steps_cannot_be_skipped(self):
        with self.assertRaises(InvalidTransitionError):
            order_management.advance_order_status(self.courier, self.order.pk, OrderStatus.DELIVERED)

    def test_other_courier_cannot_advance(self):
        other = make_courier("other", km_north=2)

        with self.assertRaises(OrderForbiddenError):
            order_management.advance_order_status(other, self.order.pk, OrderStatus.PICKED_UP)

    def test_courier_is_busy_until_delivered(self):
        second_order = make_order(self.client_user)

        self.assertEqual(
            dispatch_next_offer(second_order).order.status,
            OrderStatus.NO_COURIER_AVAILABLE,
        )


class RedispatchTests(TestCase):

    def test_admin_redispatch_after_new_courier_comes_online(self):
        order = make_order(make_client())
        dispatch_next_offer(order)
        courier = make_courier("late", km_north=1)

        result = order_management.redispatch_order(order.pk)

        self.assertEqual(result.order.status, OrderStatus.PENDING)
        self.assertEqual(result.dispatch.offer.delivery_person_id, courier.pk)

    def test_redispatch_requires_exhausted_order(self):
        order = make_order(make_client())

        with self.assertRaises(InvalidTransitionError):
            order_management.redispatch_order(order.pk)


class InterruptedDispatchTests(TestCase):

    def setUp(self):
        self.client_user = make_client()
        self.courier = make_courier("courier", km_north=1)

    def test_sweep_offers_order_whose_first_dispatch_failed(self):
        with patch(
            "services.order_management.order_lifecycle.dispatch_next_offer",
            side_effect=OperationalError("database connection lost"),
        ):
            with self.assertRaises(OperationalError):
                order_management.create_order(
                    self.client_user, "A", "B",
                    payment_method=PaymentMethod.CASH,
                    gateway=FakeGateway(),
                )

        order = Order.objects.get(client=self.client_user)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertFalse(order.offers.exists())

        result = sweep_expired_offers()

        self.assertEqual(result.expired_count, 0)
        self.assertEqual(result.stranded_count, 1)
        self.assertEqual(result.redistributed_order_ids, [order.pk])
        self.assertEqual(result.dispatched_count, 1)
        offer = order.offers.get()
        self.assertEqual(offer.status, OfferStatus.PENDING)
        self.assertEqual(offer.delivery_person_id, self.courier.pk)

    def test_sweep_offers_order_whose_payment_confirmation_dispatch_failed(self):
        order = make_order(self.client_user, status=OrderStatus.AWAITING_PAYMENT)

        with patch(
            "services.order_management.order_lifecycle.dispatch_next_offer",
            side_effect=OperationalError("database connection lost"),
        ):
            with self.assertRaises(OperationalError):
                order_management.confirm_payment(order.pk)

        result = sweep_expired_offers()

        self.assertEqual(result.redistributed_order_ids, [order.pk])
        self.assertEqual(order.offers.get().delivery_person_id, self.courier.pk)
