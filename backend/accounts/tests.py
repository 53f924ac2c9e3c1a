from django.test import TestCase
from rest_framework.test import APIRequestFactory

from couriers.models import DeliveryPersonProfile
from .models import User, UserRole
from .views import LoginView, RegisterView


class RegistrationTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	def test_delivery_person_gets_a_profile(self):
		request = self.factory.post('/api/auth/register/', {
			'username': 'maria',
			'password': 'password123',
			'role': UserRole.DELIVERY_PERSON,
			'vehicle_type': 'motorcycle',
		}, format='json')
		response = RegisterView.as_view()(request)

		self.assertEqual(response.status_code, 201)
		self.assertIn('access', response.data['tokens'])
		profile = DeliveryPersonProfile.objects.get(user__username='maria')
		self.assertEqual(profile.vehicle_type, 'motorcycle')
		self.assertFalse(profile.is_online)
		self.assertEqual(profile.priority_score, 0)

	def test_delivery_person_needs_vehicle_type(self):
		request = self.factory.post('/api/auth/register/', {
			'username': 'joao',
			'password': 'password123',
			'role': UserRole.DELIVERY_PERSON,
		}, format='json')
		response = RegisterView.as_view()(request)

		self.assertEqual(response.status_code, 400)
		self.assertIn('vehicle_type', response.data)

	def test_admin_role_cannot_be_self_assigned(self):
		request = self.factory.post('/api/auth/register/', {
			'username': 'sneaky',
			'password': 'password123',
			'role': UserRole.ADMIN,
		}, format='json')
		response = RegisterView.as_view()(request)

		self.assertEqual(response.status_code, 400)
		self.assertFalse(User.objects.filter(username='sneaky').exists())

	def test_login_returns_tokens(self):
		User.objects.create_user(username='ana', password='password123', role=UserRole.CLIENT)

		request = self.factory.post('/api/auth/login/', {
			'username': 'ana',
			'password': 'password123',
		}, format='json')
		response = LoginView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['user']['role'], UserRole.CLIENT)
		self.assertIn('refresh', response.data['tokens'])
