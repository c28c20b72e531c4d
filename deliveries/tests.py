"""Deliveries app tests."""

import threading
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from cart.models import CartLine
from deliveries import handoff
from deliveries.models import Delivery, DeliveryPosition, DeliveryStatus
from orders import lifecycle
from orders.exceptions import (
	AlreadyAssigned,
	DeliveryNotFound,
	InvalidDeliveryCode,
	InvalidTransition,
	OrderNotPaid,
	TrackingNotActive,
)
from orders.models import Order, OrderStatus
from products.models import Shop, Product


class DeliveryFixtureMixin:
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.buyer = User.objects.create_user(username='dl_buyer', password='12345678', user_type='buyer')
		cls.seller = User.objects.create_user(username='dl_seller', password='12345678', user_type='seller')
		cls.agent = User.objects.create_user(username='dl_agent', password='12345678', user_type='delivery')
		cls.other_agent = User.objects.create_user(username='dl_agent2', password='12345678', user_type='delivery')
		cls.admin = User.objects.create_user(username='dl_admin', password='12345678', user_type='admin')
		cls.shop = Shop.objects.create(seller=cls.seller, name='Delivery Shop')
		cls.product = Product.objects.create(shop=cls.shop, name='Lamp', price='1000.00', stock=50)

	def _paid_order(self, reference='REF'):
		order = lifecycle.create_order(self.buyer, [CartLine(self.product.id, 2)], 'mobile_money', '7 Lake Road')
		return lifecycle.mark_paid(order.id, f'{reference}-{order.id}')


class HandoffServiceTests(DeliveryFixtureMixin, TestCase):
	def test_assign_paid_order(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent, assigned_by=self.admin)

		self.assertEqual(delivery.status, DeliveryStatus.ASSIGNED)
		self.assertEqual(delivery.agent, self.agent)
		self.assertEqual(delivery.assigned_by, self.admin)
		self.assertIsNotNone(delivery.assigned_at)

	def test_assign_pending_order_rejected(self):
		order = lifecycle.create_order(self.buyer, [CartLine(self.product.id, 1)], 'card', 'x')
		with self.assertRaises(OrderNotPaid):
			handoff.assign_delivery(order.id, self.agent)
		self.assertFalse(Delivery.objects.exists())

	def test_assign_to_non_agent_rejected(self):
		order = self._paid_order()
		with self.assertRaises(ValidationError):
			handoff.assign_delivery(order.id, self.seller)

	def test_second_active_assignment_rejected(self):
		order = self._paid_order()
		handoff.assign_delivery(order.id, self.agent)

		with self.assertRaises(AlreadyAssigned):
			handoff.assign_delivery(order.id, self.other_agent)
		self.assertEqual(Delivery.objects.filter(order=order).count(), 1)

	def test_reassign_after_failed_delivery(self):
		order = self._paid_order()
		first = handoff.assign_delivery(order.id, self.agent)
		handoff.update_delivery_status(first.id, DeliveryStatus.FAILED, notes='Nobody home', agent=self.agent)

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PAID)

		second = handoff.assign_delivery(order.id, self.other_agent)
		self.assertEqual(second.status, DeliveryStatus.ASSIGNED)
		first.refresh_from_db()
		self.assertEqual(first.notes, 'Nobody home')
		self.assertIsNotNone(first.failed_at)

	def test_full_handoff_completes_order(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)

		handoff.update_delivery_status(delivery.id, 'picked_up', agent=self.agent)
		handoff.update_delivery_status(delivery.id, 'in_transit', agent=self.agent)
		delivery = handoff.update_delivery_status(
			delivery.id, 'delivered', code=order.delivery_code.upper(), agent=self.agent,
		)

		self.assertEqual(delivery.status, DeliveryStatus.DELIVERED)
		self.assertIsNotNone(delivery.picked_up_at)
		self.assertIsNotNone(delivery.in_transit_at)
		self.assertIsNotNone(delivery.delivered_at)

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.DELIVERED)
		self.assertTrue(order.is_delivered)
		self.assertIsNotNone(order.delivery_code_consumed_at)

	def test_wrong_code_changes_nothing(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)
		handoff.update_delivery_status(delivery.id, 'picked_up', agent=self.agent)
		handoff.update_delivery_status(delivery.id, 'in_transit', agent=self.agent)

		with self.assertRaises(InvalidDeliveryCode):
			handoff.update_delivery_status(delivery.id, 'delivered', code='zzzzzz', agent=self.agent)

		delivery.refresh_from_db()
		order.refresh_from_db()
		self.assertEqual(delivery.status, DeliveryStatus.IN_TRANSIT)
		self.assertEqual(order.status, OrderStatus.PAID)
		self.assertIsNone(order.delivery_code_consumed_at)

	def test_code_cannot_be_used_twice(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)
		handoff.update_delivery_status(delivery.id, 'picked_up')
		handoff.update_delivery_status(delivery.id, 'in_transit')
		handoff.update_delivery_status(delivery.id, 'delivered', code=order.delivery_code)

		with self.assertRaises(InvalidDeliveryCode):
			handoff.update_delivery_status(delivery.id, 'delivered', code=order.delivery_code)

	def test_skipping_a_step_is_rejected_and_keeps_code(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)

		with self.assertRaises(InvalidTransition):
			handoff.update_delivery_status(delivery.id, 'delivered', code=order.delivery_code, agent=self.agent)

		order.refresh_from_db()
		self.assertIsNone(order.delivery_code_consumed_at)
		delivery.refresh_from_db()
		self.assertEqual(delivery.status, DeliveryStatus.ASSIGNED)

	def test_nothing_leaves_failed(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)
		handoff.update_delivery_status(delivery.id, 'failed')

		with self.assertRaises(InvalidTransition):
			handoff.update_delivery_status(delivery.id, 'picked_up')

	def test_agent_cannot_touch_other_agents_delivery(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)

		with self.assertRaises(DeliveryNotFound):
			handoff.update_delivery_status(delivery.id, 'picked_up', agent=self.other_agent)

	def test_unknown_status_rejected(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)
		with self.assertRaises(ValidationError):
			handoff.update_delivery_status(delivery.id, 'teleported')

	def test_assigned_queue_is_oldest_first_and_active_only(self):
		now = timezone.now()
		newer = handoff.assign_delivery(self._paid_order().id, self.agent)
		older = handoff.assign_delivery(self._paid_order().id, self.agent)
		Delivery.objects.filter(pk=older.pk).update(assigned_at=now - timedelta(hours=2))
		Delivery.objects.filter(pk=newer.pk).update(assigned_at=now - timedelta(hours=1))
		failed = handoff.assign_delivery(self._paid_order().id, self.agent)
		handoff.update_delivery_status(failed.id, 'failed')

		queue = list(handoff.get_assigned_deliveries(self.agent))
		self.assertEqual([d.id for d in queue], [older.id, newer.id])

	def test_stats_and_agent_workload(self):
		handoff.assign_delivery(self._paid_order().id, self.agent)
		failed = handoff.assign_delivery(self._paid_order().id, self.agent)
		handoff.update_delivery_status(failed.id, 'failed')

		stats = handoff.get_delivery_stats()
		self.assertEqual(stats['total'], 2)
		self.assertEqual(stats['active'], 1)
		self.assertEqual(stats['by_status']['assigned'], 1)
		self.assertEqual(stats['by_status']['failed'], 1)
		self.assertEqual(stats['by_status']['delivered'], 0)
		self.assertEqual(stats['agents'], 2)

		workload = {u.username: u.active_deliveries for u in handoff.available_agents()}
		self.assertEqual(workload, {'dl_agent': 1, 'dl_agent2': 0})


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class DeliveryApiTests(DeliveryFixtureMixin, TestCase):
	def setUp(self):
		self.admin_client = APIClient()
		self.admin_client.force_authenticate(user=self.admin)
		self.agent_client = APIClient()
		self.agent_client.force_authenticate(user=self.agent)

	def test_end_to_end_delivery(self):
		order = self._paid_order()

		res = self.admin_client.post(
			'/api/deliveries/', data={'order_id': order.id, 'agent_id': self.agent.id}, format='json',
		)
		self.assertEqual(res.status_code, 201)
		delivery_id = res.data['id']
		self.assertEqual(res.data['status'], 'assigned')

		res = self.agent_client.get('/api/deliveries/assigned/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual([d['id'] for d in res.data], [delivery_id])
		# agents never see the buyer's code
		self.assertIsNone(res.data[0]['order'].get('delivery_code'))

		for step in ('picked_up', 'in_transit'):
			res = self.agent_client.patch(f'/api/deliveries/{delivery_id}/status/', data={'status': step}, format='json')
			self.assertEqual(res.status_code, 200)
			self.assertEqual(res.data['status'], step)

		res = self.agent_client.patch(
			f'/api/deliveries/{delivery_id}/status/',
			data={'status': 'delivered', 'code': order.delivery_code},
			format='json',
		)
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['status'], 'delivered')

		order.refresh_from_db()
		self.assertTrue(order.is_delivered)
		self.assertEqual(order.status, OrderStatus.DELIVERED)

		res = self.agent_client.get('/api/deliveries/assigned/')
		self.assertEqual(res.data, [])

	def test_assign_twice_conflicts(self):
		order = self._paid_order()
		payload = {'order_id': order.id, 'agent_id': self.agent.id}
		self.assertEqual(self.admin_client.post('/api/deliveries/', data=payload, format='json').status_code, 201)

		res = self.admin_client.post('/api/deliveries/', data=payload, format='json')
		self.assertEqual(res.status_code, 409)
		self.assertEqual(res.data['code'], 'already_assigned')

	def test_assign_unpaid_order_conflicts(self):
		order = lifecycle.create_order(self.buyer, [CartLine(self.product.id, 1)], 'card', 'x')
		res = self.admin_client.post(
			'/api/deliveries/', data={'order_id': order.id, 'agent_id': self.agent.id}, format='json',
		)
		self.assertEqual(res.status_code, 409)
		self.assertEqual(res.data['code'], 'order_not_paid')

	def test_assign_unknown_order(self):
		res = self.admin_client.post(
			'/api/deliveries/', data={'order_id': 999999, 'agent_id': self.agent.id}, format='json',
		)
		self.assertEqual(res.status_code, 404)

	def test_agent_cannot_assign(self):
		order = self._paid_order()
		res = self.agent_client.post(
			'/api/deliveries/', data={'order_id': order.id, 'agent_id': self.agent.id}, format='json',
		)
		self.assertEqual(res.status_code, 403)

	def test_buyer_cannot_use_delivery_api(self):
		client = APIClient()
		client.force_authenticate(user=self.buyer)
		self.assertEqual(client.get('/api/deliveries/').status_code, 403)

	def test_delivered_requires_code(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)
		res = self.agent_client.patch(f'/api/deliveries/{delivery.id}/status/', data={'status': 'delivered'}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertIn('code', res.data)

	def test_wrong_code_forbidden(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)
		handoff.update_delivery_status(delivery.id, 'picked_up')
		handoff.update_delivery_status(delivery.id, 'in_transit')

		res = self.agent_client.patch(
			f'/api/deliveries/{delivery.id}/status/', data={'status': 'delivered', 'code': 'nope'}, format='json',
		)
		self.assertEqual(res.status_code, 403)
		self.assertEqual(res.data['code'], 'invalid_delivery_code')

	def test_invalid_transition_conflicts(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)
		res = self.agent_client.patch(f'/api/deliveries/{delivery.id}/status/', data={'status': 'in_transit'}, format='json')
		self.assertEqual(res.status_code, 409)
		self.assertEqual(res.data['code'], 'invalid_transition')

	def test_other_agent_gets_not_found(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)
		client = APIClient()
		client.force_authenticate(user=self.other_agent)

		res = client.patch(f'/api/deliveries/{delivery.id}/status/', data={'status': 'picked_up'}, format='json')
		self.assertEqual(res.status_code, 404)
		self.assertEqual(res.data['code'], 'delivery_not_found')
		self.assertEqual(client.get(f'/api/deliveries/{delivery.id}/').status_code, 404)

	def test_admin_stats_and_agents(self):
		handoff.assign_delivery(self._paid_order().id, self.agent)

		res = self.admin_client.get('/api/deliveries/stats/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['active'], 1)

		res = self.admin_client.get('/api/deliveries/agents/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data[0]['username'], 'dl_agent2')
		self.assertEqual(res.data[0]['active_deliveries'], 0)

		self.assertEqual(self.agent_client.get('/api/deliveries/stats/').status_code, 403)


class TrackingServiceTests(DeliveryFixtureMixin, TestCase):
	def _on_the_road(self):
		delivery = handoff.assign_delivery(self._paid_order().id, self.agent)
		return handoff.update_delivery_status(delivery.id, DeliveryStatus.PICKED_UP, agent=self.agent)

	def test_record_and_read_back(self):
		delivery = self._on_the_road()
		handoff.record_position(delivery.id, self.agent, 0.3476, 32.5825, accuracy=8.0)
		handoff.update_delivery_status(delivery.id, DeliveryStatus.IN_TRANSIT, agent=self.agent)
		last = handoff.record_position(delivery.id, self.agent, 0.31234567, 32.6, speed=11.5, heading=90)

		self.assertEqual(last.latitude, Decimal('0.312346'))
		route = handoff.get_positions(delivery.id)
		self.assertEqual([p.latitude for p in route], [Decimal('0.347600'), Decimal('0.312346')])
		self.assertEqual(handoff.last_position(delivery.id).pk, last.pk)

	def test_history_is_latest_fixes_oldest_first(self):
		delivery = self._on_the_road()
		first = handoff.record_position(delivery.id, self.agent, 1, 30)
		second = handoff.record_position(delivery.id, self.agent, 2, 30)
		third = handoff.record_position(delivery.id, self.agent, 3, 30)
		DeliveryPosition.objects.filter(pk=first.pk).update(recorded_at=timezone.now() - timedelta(minutes=2))
		DeliveryPosition.objects.filter(pk=second.pk).update(recorded_at=timezone.now() - timedelta(minutes=1))

		self.assertEqual([p.pk for p in handoff.get_positions(delivery.id, limit=2)], [second.pk, third.pk])

	def test_no_fixes_before_pickup_or_after_completion(self):
		order = self._paid_order()
		delivery = handoff.assign_delivery(order.id, self.agent)
		with self.assertRaises(TrackingNotActive):
			handoff.record_position(delivery.id, self.agent, 0.3, 32.5)

		handoff.update_delivery_status(delivery.id, DeliveryStatus.PICKED_UP, agent=self.agent)
		handoff.update_delivery_status(delivery.id, DeliveryStatus.IN_TRANSIT, agent=self.agent)
		handoff.update_delivery_status(delivery.id, DeliveryStatus.DELIVERED, code=order.delivery_code, agent=self.agent)
		with self.assertRaises(TrackingNotActive):
			handoff.record_position(delivery.id, self.agent, 0.3, 32.5)
		self.assertFalse(DeliveryPosition.objects.exists())

	def test_only_the_carrying_agent_reports(self):
		delivery = self._on_the_road()
		with self.assertRaises(DeliveryNotFound):
			handoff.record_position(delivery.id, self.other_agent, 0.3, 32.5)

	def test_coordinates_out_of_range(self):
		delivery = self._on_the_road()
		with self.assertRaises(ValidationError):
			handoff.record_position(delivery.id, self.agent, 91, 32.5)
		with self.assertRaises(ValidationError):
			handoff.record_position(delivery.id, self.agent, 0.3, -180.5)
		self.assertIsNone(handoff.last_position(delivery.id))


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class TrackingApiTests(DeliveryFixtureMixin, TestCase):
	def setUp(self):
		self.agent_client = APIClient()
		self.agent_client.force_authenticate(user=self.agent)
		self.buyer_client = APIClient()
		self.buyer_client.force_authenticate(user=self.buyer)
		delivery = handoff.assign_delivery(self._paid_order().id, self.agent)
		self.delivery = handoff.update_delivery_status(delivery.id, DeliveryStatus.PICKED_UP, agent=self.agent)
		self.url = f'/api/deliveries/{self.delivery.id}/positions/'

	def test_agent_reports_and_buyer_follows(self):
		res = self.agent_client.post(self.url, data={'latitude': 0.3476, 'longitude': 32.5825, 'accuracy': 5}, format='json')
		self.assertEqual(res.status_code, 201)
		self.assertEqual(res.data['latitude'], '0.347600')

		res = self.buyer_client.get(self.url)
		self.assertEqual(res.status_code, 200)
		self.assertEqual(len(res.data), 1)

		res = self.buyer_client.get(f'/api/deliveries/{self.delivery.id}/last-position/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['longitude'], '32.582500')

	def test_last_position_before_any_fix(self):
		res = self.agent_client.get(f'/api/deliveries/{self.delivery.id}/last-position/')
		self.assertEqual(res.status_code, 404)

	def test_buyer_cannot_report(self):
		res = self.buyer_client.post(self.url, data={'latitude': 0.3, 'longitude': 32.5}, format='json')
		self.assertEqual(res.status_code, 403)

	def test_other_buyer_cannot_follow(self):
		stranger = get_user_model().objects.create_user(username='dl_stranger', password='12345678', user_type='buyer')
		client = APIClient()
		client.force_authenticate(user=stranger)

		res = client.get(self.url)
		self.assertEqual(res.status_code, 404)
		self.assertEqual(res.data['code'], 'delivery_not_found')

	def test_invalid_coordinates(self):
		res = self.agent_client.post(self.url, data={'latitude': 120, 'longitude': 32.5}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertIn('latitude', res.data)

	def test_assigned_delivery_is_not_tracked_yet(self):
		delivery = handoff.assign_delivery(self._paid_order('SECOND').id, self.agent)
		res = self.agent_client.post(
			f'/api/deliveries/{delivery.id}/positions/', data={'latitude': 0.3, 'longitude': 32.5}, format='json',
		)
		self.assertEqual(res.status_code, 409)
		self.assertEqual(res.data['code'], 'tracking_not_active')


class ConcurrentAssignmentTests(TransactionTestCase):
	"""Two admins assign the same order at once; one assignment wins."""

	def setUp(self):
		User = get_user_model()
		buyer = User.objects.create_user(username='race_buyer', password='12345678', user_type='buyer')
		seller = User.objects.create_user(username='race_seller', password='12345678', user_type='seller')
		self.agents = [
			User.objects.create_user(username=f'race_agent{i}', password='12345678', user_type='delivery')
			for i in range(2)
		]
		shop = Shop.objects.create(seller=seller, name='Race Shop')
		product = Product.objects.create(shop=shop, name='Kettle', price='20.00', stock=5)
		order = lifecycle.create_order(buyer, [CartLine(product.id, 1)], 'mobile_money', 'somewhere')
		self.order = lifecycle.mark_paid(order.id, f'RACE-{order.id}')

	def test_two_concurrent_assignments(self):
		barrier = threading.Barrier(2)
		results = []

		def assign(agent):
			try:
				barrier.wait()
				handoff.assign_delivery(self.order.id, agent)
				results.append('ok')
			except AlreadyAssigned:
				results.append('already_assigned')
			finally:
				connection.close()

		threads = [threading.Thread(target=assign, args=(agent,)) for agent in self.agents]
		for t in threads:
			t.start()
		for t in threads:
			t.join()

		self.assertEqual(sorted(results), ['already_assigned', 'ok'])
		self.assertEqual(Delivery.objects.filter(order=self.order).count(), 1)
