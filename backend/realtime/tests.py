from decimal import Decimal

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.test import TestCase

from accounts.models import User, UserRole
from orders.models import Order, OrderStatus
from .notifications import (
    ADMINS_GROUP,
    courier_group,
    notify_admins_order_exhausted,
    notify_client_event,
    notify_courier_event,
    user_group,
)


class NotificationTests(TestCase):
	def setUp(self):
		self.layer = get_channel_layer()
		self.client_user = User.objects.create_user(username='client', password='x', role=UserRole.CLIENT)
		self.courier = User.objects.create_user(username='courier', password='x', role=UserRole.DELIVERY_PERSON)
		self.order = Order.objects.create(
			client=self.client_user,
			origin_address='Praca da Se',
			destination_address='Avenida Paulista',
			distance_km=Decimal('10.00'),
			delivery_fee=Decimal('25.00'),
			platform_fee=Decimal('5.00'),
			price=Decimal('30.00'),
			status=OrderStatus.PENDING,
		)

	def listen(self, group):
		channel = async_to_sync(self.layer.new_channel)()
		async_to_sync(self.layer.group_add)(group, channel)
		return channel

	def receive(self, channel):
		return async_to_sync(self.layer.receive)(channel)

	def test_courier_event_reaches_courier_group(self):
		channel = self.listen(courier_group(self.courier.id))

		sent = notify_courier_event('order_offer', self.order.id, self.courier.id, 'New delivery offer.', {'offer_id': 7})

		self.assertTrue(sent)
		message = self.receive(channel)
		self.assertEqual(message['type'], 'order_offer')
		self.assertEqual(message['offer_id'], 7)
		self.assertEqual(message['order_data']['id'], self.order.id)

	def test_client_event_reaches_order_owner(self):
		channel = self.listen(user_group(self.client_user.id))

		notify_client_event('order_accepted', self.order.id, 'Accepted')

		message = self.receive(channel)
		self.assertEqual(message['type'], 'order_accepted')
		self.assertEqual(message['status'], OrderStatus.PENDING)

	def test_admins_hear_about_exhausted_orders(self):
		channel = self.listen(ADMINS_GROUP)

		notify_admins_order_exhausted(self.order.id, 3)

		message = self.receive(channel)
		self.assertEqual(message['type'], 'order_exhausted')
		self.assertEqual(message['attempts'], 3)

	def test_missing_target_is_not_sent(self):
		self.assertFalse(notify_courier_event('order_offer', self.order.id, None))
		self.assertFalse(notify_client_event('order_accepted', self.order.id + 100))
