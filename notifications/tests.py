"""Notifications app tests."""

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from cart.models import CartLine
from deliveries import handoff
from notifications.models import Notification
from orders import lifecycle
from orders.events import order_status_changed
from orders.models import Order, OrderStatus
from products.models import Shop, Product


class NotificationFixtureMixin:
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.buyer = User.objects.create_user(username='nt_buyer', password='12345678', user_type='buyer')
		cls.seller = User.objects.create_user(username='nt_seller', password='12345678', user_type='seller')
		cls.agent = User.objects.create_user(username='nt_agent', password='12345678', user_type='delivery')
		cls.shop = Shop.objects.create(seller=cls.seller, name='Notify Shop')
		cls.product = Product.objects.create(shop=cls.shop, name='Fan', price='40.00', stock=10)

	def _order(self):
		return lifecycle.create_order(self.buyer, [CartLine(self.product.id, 1)], 'card', '3 River Lane')


class OrderEventNotificationTests(NotificationFixtureMixin, TestCase):
	def test_nothing_is_sent_before_commit(self):
		with self.captureOnCommitCallbacks() as callbacks:
			self._order()
		self.assertEqual(len(callbacks), 1)
		self.assertFalse(Notification.objects.exists())

	def test_new_order_notifies_seller(self):
		with self.captureOnCommitCallbacks(execute=True):
			order = self._order()

		note = Notification.objects.get()
		self.assertEqual(note.recipient, self.seller)
		self.assertEqual(note.kind, 'order.pending')
		self.assertEqual(note.payload['order_id'], order.id)
		self.assertIsNone(note.payload['previous'])

	def test_paid_notifies_buyer_and_seller(self):
		order = self._order()
		with self.captureOnCommitCallbacks(execute=True):
			lifecycle.mark_paid(order.id, 'REF-1')

		recipients = set(Notification.objects.filter(kind='order.paid').values_list('recipient__username', flat=True))
		self.assertEqual(recipients, {'nt_buyer', 'nt_seller'})

	def test_actor_is_not_notified_of_own_cancel(self):
		order = self._order()
		with self.captureOnCommitCallbacks(execute=True):
			lifecycle.cancel_order(order.id, actor=self.buyer)

		notes = Notification.objects.filter(kind='order.cancelled')
		self.assertEqual([n.recipient for n in notes], [self.seller])

	def test_failing_receiver_does_not_undo_state_change(self):
		def broken(sender, **kwargs):
			raise RuntimeError('boom')

		order = self._order()
		order_status_changed.connect(broken, dispatch_uid='test-broken-receiver')
		try:
			with self.assertLogs('orders.events', level='ERROR'):
				with self.captureOnCommitCallbacks(execute=True):
					lifecycle.mark_paid(order.id, 'REF-1')
		finally:
			order_status_changed.disconnect(dispatch_uid='test-broken-receiver')

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PAID)
		self.assertTrue(Notification.objects.filter(kind='order.paid').exists())


class DeliveryEventNotificationTests(NotificationFixtureMixin, TestCase):
	def setUp(self):
		self.order = self._order()
		lifecycle.mark_paid(self.order.id, 'REF-1')

	def test_assignment_notifies_agent_and_gives_buyer_the_code(self):
		with self.captureOnCommitCallbacks(execute=True):
			handoff.assign_delivery(self.order.id, self.agent)

		agent_note = Notification.objects.get(recipient=self.agent)
		self.assertEqual(agent_note.kind, 'delivery.assigned')
		self.assertNotIn(self.order.delivery_code, agent_note.message)

		buyer_note = Notification.objects.get(recipient=self.buyer)
		self.assertIn(self.order.delivery_code, buyer_note.message)

	def test_delivered_notifies_buyer_and_seller(self):
		delivery = handoff.assign_delivery(self.order.id, self.agent)
		handoff.update_delivery_status(delivery.id, 'picked_up', agent=self.agent)
		handoff.update_delivery_status(delivery.id, 'in_transit', agent=self.agent)

		with self.captureOnCommitCallbacks(execute=True):
			handoff.update_delivery_status(delivery.id, 'delivered', code=self.order.delivery_code, agent=self.agent)

		kinds = sorted(Notification.objects.values_list('kind', flat=True))
		self.assertEqual(kinds, ['delivery.delivered', 'delivery.delivered', 'order.delivered', 'order.delivered'])
		self.assertFalse(Notification.objects.filter(recipient=self.agent).exists())
		self.assertTrue(Order.objects.get(pk=self.order.pk).is_delivered)


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class NotificationApiTests(NotificationFixtureMixin, TestCase):
	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.seller)
		self.first = Notification.objects.create(recipient=self.seller, kind='order.pending', message='one')
		self.second = Notification.objects.create(recipient=self.seller, kind='order.paid', message='two')
		Notification.objects.create(recipient=self.buyer, kind='order.paid', message='not yours')

	def test_inbox_only_shows_own_notifications(self):
		res = self.client.get('/api/notifications/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['count'], 2)

	def test_mark_read(self):
		res = self.client.post(f'/api/notifications/{self.first.id}/read/')
		self.assertEqual(res.status_code, 200)
		self.first.refresh_from_db()
		self.assertTrue(self.first.is_read)

		res = self.client.get('/api/notifications/?unread=true')
		self.assertEqual([n['id'] for n in res.data['results']], [self.second.id])

	def test_read_all(self):
		res = self.client.post('/api/notifications/read-all/')
		self.assertEqual(res.data, {'updated': 2})
		self.assertFalse(Notification.objects.filter(recipient=self.seller, read_at__isnull=True).exists())

	def test_cannot_read_someone_elses_notification(self):
		other = Notification.objects.get(recipient=self.buyer)
		res = self.client.post(f'/api/notifications/{other.id}/read/')
		self.assertEqual(res.status_code, 404)
