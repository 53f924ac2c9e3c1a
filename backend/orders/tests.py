from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User, UserRole
from couriers.models import DeliveryPersonProfile
from services.exceptions import UpstreamUnavailableError
from services.geocoding import Coordinates, RouteEstimate
from services.matching import dispatch_next_offer
from .models import Order, OrderOffer, OrderStatus, OfferStatus, PaymentMethod
from .tasks import sweep_expired_offers_task
from . import views


class OrderApiTestCase(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.client_user = User.objects.create_user(
			username='client',
			password='pass1234',
			role=UserRole.CLIENT,
		)
		self.courier = User.objects.create_user(
			username='courier',
			password='pass1234',
			role=UserRole.DELIVERY_PERSON,
		)
		self.other_courier = User.objects.create_user(
			username='other_courier',
			password='pass1234',
			role=UserRole.DELIVERY_PERSON,
		)
		self.admin = User.objects.create_user(
			username='admin',
			password='pass1234',
			role=UserRole.ADMIN,
		)
		DeliveryPersonProfile.objects.create(
			user=self.courier,
			is_online=True,
			current_latitude=Decimal('-23.545000'),
			current_longitude=Decimal('-46.633300'),
		)
		DeliveryPersonProfile.objects.create(
			user=self.other_courier,
			is_online=True,
			current_latitude=Decimal('-23.530000'),
			current_longitude=Decimal('-46.633300'),
		)

	def make_order(self, **fields):
		defaults = dict(
			client=self.client_user,
			origin_address='Praca da Se',
			origin_latitude=Decimal('-23.550500'),
			origin_longitude=Decimal('-46.633300'),
			destination_address='Avenida Paulista',
			distance_km=Decimal('10.00'),
			delivery_fee=Decimal('25.00'),
			platform_fee=Decimal('5.00'),
			price=Decimal('30.00'),
			payment_method=PaymentMethod.CASH,
			status=OrderStatus.PENDING,
		)
		defaults.update(fields)
		return Order.objects.create(**defaults)


class CreateOrderApiTests(OrderApiTestCase):

	@patch('services.order_management.order_lifecycle.get_geocoding_gateway')
	def test_create_order_prices_and_offers(self, mock_gateway):
		gateway = mock_gateway.return_value
		gateway.geocode.side_effect = [
			Coordinates(latitude=-23.5505, longitude=-46.6333),
			Coordinates(latitude=-23.5650, longitude=-46.6520),
		]
		gateway.route.return_value = RouteEstimate(distance_km=10.0, duration_minutes=25.0)

		request = self.factory.post('/api/orders/', {
			'origin_address': 'Praca da Se',
			'destination_address': 'Avenida Paulista',
			'payment_method': 'CASH',
		}, format='json')
		force_authenticate(request, user=self.client_user)
		response = views.orders(request)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['order']['price'], '30.00')
		self.assertEqual(response.data['order']['status'], OrderStatus.PENDING)
		offer = OrderOffer.objects.get()
		self.assertEqual(offer.delivery_person, self.courier)

	@patch('services.order_management.order_lifecycle.get_geocoding_gateway')
	def test_provider_outage_is_503(self, mock_gateway):
		mock_gateway.return_value.geocode.side_effect = UpstreamUnavailableError('Maps provider unreachable')

		request = self.factory.post('/api/orders/', {
			'origin_address': 'Praca da Se',
			'destination_address': 'Avenida Paulista',
		}, format='json')
		force_authenticate(request, user=self.client_user)
		response = views.orders(request)

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['error'], 'upstream_unavailable')
		self.assertFalse(Order.objects.exists())

	def test_couriers_cannot_create_orders(self):
		request = self.factory.post('/api/orders/', {
			'origin_address': 'Praca da Se',
			'destination_address': 'Avenida Paulista',
		}, format='json')
		force_authenticate(request, user=self.courier)
		response = views.orders(request)

		self.assertEqual(response.status_code, 403)

	def test_order_detail_is_private(self):
		order = self.make_order()
		stranger = User.objects.create_user(username='stranger', password='x', role=UserRole.CLIENT)

		request = self.factory.get('/api/orders/%d/' % order.id)
		force_authenticate(request, user=stranger)
		response = views.order_detail(request, order_id=order.id)

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'forbidden')


class OfferApiTests(OrderApiTestCase):
	def setUp(self):
		super().setUp()
		self.order = self.make_order()
		self.offer = dispatch_next_offer(self.order).offer

	def test_pending_offers_report_server_countdown(self):
		request = self.factory.get('/api/orders/offers/pending/')
		force_authenticate(request, user=self.courier)
		response = views.pending_offers(request)

		self.assertEqual(response.status_code, 200)
		self.assertIn('server_time', response.data)
		self.assertEqual(response.data['count'], 1)
		remaining = response.data['offers'][0]['remaining_seconds']
		self.assertTrue(0 < remaining <= 60)

	def test_accept_offer(self):
		request = self.factory.post('/api/orders/offers/%d/accept/' % self.offer.id)
		force_authenticate(request, user=self.courier)
		response = views.accept_order_offer(request, offer_id=self.offer.id)

		self.assertEqual(response.status_code, 200)
		self.order.refresh_from_db()
		self.assertEqual(self.order.status, OrderStatus.ACCEPTED)
		self.assertEqual(self.order.delivery_person, self.courier)

	def test_accept_someone_elses_offer_is_403(self):
		request = self.factory.post('/api/orders/offers/%d/accept/' % self.offer.id)
		force_authenticate(request, user=self.other_courier)
		response = views.accept_order_offer(request, offer_id=self.offer.id)

		self.assertEqual(response.status_code, 403)

	def test_accept_expired_offer_is_409(self):
		OrderOffer.objects.filter(pk=self.offer.pk).update(expires_at=timezone.now() - timedelta(seconds=1))

		request = self.factory.post('/api/orders/offers/%d/accept/' % self.offer.id)
		force_authenticate(request, user=self.courier)
		response = views.accept_order_offer(request, offer_id=self.offer.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'offer_unavailable')

	def test_unknown_offer_is_404(self):
		request = self.factory.post('/api/orders/offers/999/accept/')
		force_authenticate(request, user=self.courier)
		response = views.accept_order_offer(request, offer_id=999)

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'offer_not_found')

	def test_reject_moves_offer_to_next_courier(self):
		request = self.factory.post('/api/orders/offers/%d/reject/' % self.offer.id)
		force_authenticate(request, user=self.courier)
		response = views.reject_order_offer(request, offer_id=self.offer.id)

		self.assertEqual(response.status_code, 200)
		self.assertFalse(response.data['paused'])
		pending = self.order.offers.get(status=OfferStatus.PENDING)
		self.assertEqual(pending.delivery_person, self.other_courier)

	def test_clients_cannot_answer_offers(self):
		request = self.factory.post('/api/orders/offers/%d/reject/' % self.offer.id)
		force_authenticate(request, user=self.client_user)
		response = views.reject_order_offer(request, offer_id=self.offer.id)

		self.assertEqual(response.status_code, 403)


class SweepTriggerTests(OrderApiTestCase):
	def setUp(self):
		super().setUp()
		self.order = self.make_order()
		self.offer = dispatch_next_offer(self.order).offer
		OrderOffer.objects.filter(pk=self.offer.pk).update(expires_at=timezone.now() - timedelta(seconds=5))

	def test_sweep_endpoint_requires_secret(self):
		request = self.factory.post('/api/orders/offers/sweep/', HTTP_X_CRON_SECRET='wrong')
		response = views.sweep_offers(request)

		self.assertEqual(response.status_code, 403)
		self.offer.refresh_from_db()
		self.assertEqual(self.offer.status, OfferStatus.PENDING)

	def test_sweep_endpoint_with_secret(self):
		request = self.factory.post('/api/orders/offers/sweep/', HTTP_X_CRON_SECRET='test-cron-secret')
		response = views.sweep_offers(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['expired_count'], 1)
		self.assertEqual(response.data['redistributed_order_ids'], [self.order.id])

	def test_management_command(self):
		call_command('sweep_expired_offers')

		self.offer.refresh_from_db()
		self.assertEqual(self.offer.status, OfferStatus.EXPIRED)
		self.assertEqual(self.order.offers.filter(status=OfferStatus.PENDING).count(), 1)

	def test_celery_task(self):
		result = sweep_expired_offers_task.delay().get()

		self.assertEqual(result['expired_count'], 1)
		self.assertEqual(result['dispatched_count'], 1)


class AdminOrderApiTests(OrderApiTestCase):

	def test_exhausted_orders_listing_and_redispatch(self):
		DeliveryPersonProfile.objects.update(is_online=False)
		order = self.make_order()
		dispatch_next_offer(order)

		request = self.factory.get('/api/orders/exhausted/')
		force_authenticate(request, user=self.admin)
		response = views.exhausted_orders(request)
		self.assertEqual(response.data['count'], 1)

		DeliveryPersonProfile.objects.filter(user=self.courier).update(is_online=True)
		request = self.factory.post('/api/orders/%d/redispatch/' % order.id)
		force_authenticate(request, user=self.admin)
		response = views.redispatch_order(request, order_id=order.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['order']['status'], OrderStatus.PENDING)

	def test_redispatch_is_admin_only(self):
		order = self.make_order(status=OrderStatus.NO_COURIER_AVAILABLE)

		request = self.factory.post('/api/orders/%d/redispatch/' % order.id)
		force_authenticate(request, user=self.client_user)
		response = views.redispatch_order(request, order_id=order.id)

		self.assertEqual(response.status_code, 403)
