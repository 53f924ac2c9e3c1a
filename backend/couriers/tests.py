from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User, UserRole
from couriers import services
from couriers.models import DeliveryPersonProfile
from couriers.views import LocationUpdateView, OnlineStatusView
from services.exceptions import ImplausibleLocationError


class CourierServiceTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(
			username='courier',
			password='pass1234',
			role=UserRole.DELIVERY_PERSON,
		)
		self.profile = DeliveryPersonProfile.objects.create(
			user=self.user,
			vehicle_type='motorcycle',
			current_latitude=Decimal('-23.550500'),
			current_longitude=Decimal('-46.633300'),
			last_location_update=timezone.now() - timedelta(minutes=10),
			priority_score=30,
			rejections_today=5,
			rejections_reset_at=timezone.now() - timedelta(days=1),
		)

	def test_going_online_on_a_new_day_resets_rejections_only(self):
		services.set_online_status(self.profile, True)

		self.profile.refresh_from_db()
		self.assertTrue(self.profile.is_online)
		self.assertEqual(self.profile.rejections_today, 0)
		self.assertEqual(self.profile.priority_score, 30)

	def test_going_online_twice_the_same_day_keeps_count(self):
		self.profile.rejections_reset_at = timezone.now()
		self.profile.save(update_fields=['rejections_reset_at'])

		services.set_online_status(self.profile, True)

		self.profile.refresh_from_db()
		self.assertEqual(self.profile.rejections_today, 5)

	def test_plausible_location_update_is_saved(self):
		services.update_location(self.profile, Decimal('-23.551000'), Decimal('-46.634000'))

		self.profile.refresh_from_db()
		self.assertEqual(self.profile.current_latitude, Decimal('-23.551000'))

	def test_teleport_is_rejected(self):
		self.profile.last_location_update = timezone.now() - timedelta(seconds=30)
		self.profile.save(update_fields=['last_location_update'])

		# Rio de Janeiro, 30 seconds after Sao Paulo
		with self.assertRaises(ImplausibleLocationError):
			services.update_location(self.profile, Decimal('-22.906800'), Decimal('-43.172900'))

		self.profile.refresh_from_db()
		self.assertEqual(self.profile.current_latitude, Decimal('-23.550500'))

	def test_available_pool_excludes_offline(self):
		self.assertFalse(services.available_delivery_persons().exists())

		services.set_online_status(self.profile, True)

		self.assertEqual(list(services.available_delivery_persons()), [self.profile])


class CourierViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.user = User.objects.create_user(
			username='courier',
			password='pass1234',
			role=UserRole.DELIVERY_PERSON,
		)
		DeliveryPersonProfile.objects.create(user=self.user, vehicle_type='bike')
		self.client_user = User.objects.create_user(
			username='client',
			password='pass1234',
			role=UserRole.CLIENT,
		)

	def test_status_toggle(self):
		request = self.factory.put('/api/courier/status/', {'is_online': True}, format='json')
		force_authenticate(request, user=self.user)
		response = OnlineStatusView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['is_online'])
		self.assertTrue(DeliveryPersonProfile.objects.get(user=self.user).is_online)

	def test_clients_are_turned_away(self):
		request = self.factory.get('/api/courier/status/')
		force_authenticate(request, user=self.client_user)
		response = OnlineStatusView.as_view()(request)

		self.assertEqual(response.status_code, 403)

	def test_location_out_of_range_is_a_validation_error(self):
		request = self.factory.post('/api/courier/location/', {'latitude': '95', 'longitude': '10'}, format='json')
		force_authenticate(request, user=self.user)
		response = LocationUpdateView.as_view()(request)

		self.assertEqual(response.status_code, 400)

	def test_first_location_is_accepted(self):
		request = self.factory.post(
			'/api/courier/location/',
			{'latitude': '-23.550500', 'longitude': '-46.633300'},
			format='json',
		)
		force_authenticate(request, user=self.user)
		response = LocationUpdateView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		profile = DeliveryPersonProfile.objects.get(user=self.user)
		self.assertIsNotNone(profile.last_location_update)
