"""Orders app tests."""

import threading
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings
from rest_framework.test import APIClient

from cart.models import CartLine, ShoppingCart, ShoppingCartItem
from deliveries.models import Delivery
from orders import lifecycle
from orders.exceptions import EmptyCart, InsufficientStock, InvalidTransition, OrderNotFound
from orders.models import Order, OrderStatus
from products.models import Shop, Product


def _marketplace(prefix):
	User = get_user_model()
	buyer = User.objects.create_user(username=f'{prefix}_buyer', password='12345678', user_type='buyer')
	seller = User.objects.create_user(username=f'{prefix}_seller', password='12345678', user_type='seller')
	shop = Shop.objects.create(seller=seller, name=f'{prefix} shop')
	return buyer, seller, shop


class OrderLifecycleTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		cls.buyer, cls.seller, cls.shop = _marketplace('life')
		cls.agent = get_user_model().objects.create_user(username='life_agent', password='12345678', user_type='delivery')

	def setUp(self):
		self.product = Product.objects.create(shop=self.shop, name='Radio', price='1000.00', stock=5)

	def _order(self, qty=2):
		return lifecycle.create_order(self.buyer, [CartLine(self.product.id, qty)], 'mobile_money', '12 Main Street')

	def test_create_order_freezes_price_and_decrements_stock(self):
		order = self._order(qty=2)

		self.assertEqual(order.status, OrderStatus.PENDING)
		self.assertEqual(order.total_amount, Decimal('2000.00'))
		self.assertEqual(order.shop_id, self.shop.id)
		item = order.items.get()
		self.assertEqual(item.unit_price, Decimal('1000.00'))
		self.assertEqual(item.quantity, 2)

		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 3)

	def test_delivery_code_is_short_and_unambiguous(self):
		order = self._order()
		self.assertEqual(len(order.delivery_code), settings.DELIVERY_CODE_LENGTH)
		self.assertTrue(set(order.delivery_code) <= set(settings.DELIVERY_CODE_ALPHABET))
		self.assertIsNone(order.delivery_code_consumed_at)

	def test_total_does_not_follow_later_price_edits(self):
		order = self._order(qty=2)
		Product.objects.filter(pk=self.product.pk).update(price='5.00')

		order.refresh_from_db()
		self.assertEqual(order.total_amount, Decimal('2000.00'))
		self.assertEqual(order.items.get().unit_price, Decimal('1000.00'))

	def test_insufficient_stock_rolls_back_every_line(self):
		other = Product.objects.create(shop=self.shop, name='Speaker', price='50.00', stock=1)

		with self.assertRaises(InsufficientStock) as ctx:
			lifecycle.create_order(
				self.buyer,
				[CartLine(self.product.id, 2), CartLine(other.id, 3)],
				'card',
				'12 Main Street',
			)

		self.assertEqual(ctx.exception.available, 1)
		self.product.refresh_from_db()
		other.refresh_from_db()
		self.assertEqual(self.product.stock, 5)
		self.assertEqual(other.stock, 1)
		self.assertFalse(Order.objects.exists())

	def test_empty_cart_rejected(self):
		with self.assertRaises(EmptyCart):
			lifecycle.create_order(self.buyer, [], 'card', '12 Main Street')

	def test_sequential_orders_cannot_oversell(self):
		Product.objects.filter(pk=self.product.pk).update(stock=1)

		lifecycle.create_order(self.buyer, [CartLine(self.product.id, 1)], 'card', 'A')
		with self.assertRaises(InsufficientStock):
			lifecycle.create_order(self.buyer, [CartLine(self.product.id, 1)], 'card', 'B')

		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 0)
		self.assertEqual(Order.objects.count(), 1)

	def test_mark_paid_is_idempotent_for_same_reference(self):
		order = self._order()
		first = lifecycle.mark_paid(order.id, 'REF-1')

		with self.captureOnCommitCallbacks() as callbacks:
			second = lifecycle.mark_paid(order.id, 'REF-1')

		self.assertEqual(callbacks, [])
		self.assertEqual(second.status, OrderStatus.PAID)
		self.assertEqual(second.paid_at, first.paid_at)

	def test_mark_paid_with_other_reference_is_rejected(self):
		order = self._order()
		lifecycle.mark_paid(order.id, 'REF-1')

		with self.assertRaises(InvalidTransition):
			lifecycle.mark_paid(order.id, 'REF-2')

		order.refresh_from_db()
		self.assertEqual(order.payment_reference, 'REF-1')

	def test_mark_shipped_on_pending_leaves_state_unchanged(self):
		order = self._order()

		with self.assertRaises(InvalidTransition):
			lifecycle.mark_shipped(order.id)

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PENDING)
		self.assertIsNone(order.shipped_at)

	def test_full_happy_path_through_shipped(self):
		order = self._order()
		lifecycle.mark_paid(order.id, 'REF-1')
		lifecycle.mark_shipped(order.id)
		order = lifecycle.mark_delivered(order.id)

		self.assertEqual(order.status, OrderStatus.DELIVERED)
		self.assertTrue(order.is_delivered)
		self.assertIsNotNone(order.delivered_at)

	def test_mark_delivered_from_paid_is_idempotent(self):
		order = self._order()
		lifecycle.mark_paid(order.id, 'REF-1')
		first = lifecycle.mark_delivered(order.id)
		second = lifecycle.mark_delivered(order.id)

		self.assertEqual(second.status, OrderStatus.DELIVERED)
		self.assertEqual(second.delivered_at, first.delivered_at)

	def test_mark_delivered_on_pending_rejected(self):
		order = self._order()
		with self.assertRaises(InvalidTransition):
			lifecycle.mark_delivered(order.id)

	def test_cancel_restocks_and_records_actor(self):
		order = self._order(qty=2)
		order = lifecycle.cancel_order(order.id, actor=self.buyer)

		self.assertEqual(order.status, OrderStatus.CANCELLED)
		self.assertEqual(order.cancelled_by, self.buyer)
		self.assertIsNotNone(order.cancelled_at)
		self.assertTrue(order.items.get().is_cancelled)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 5)

	def test_cancel_paid_order(self):
		order = self._order()
		lifecycle.mark_paid(order.id, 'REF-1')
		order = lifecycle.cancel_order(order.id, actor=self.seller)
		self.assertEqual(order.status, OrderStatus.CANCELLED)

	def test_cancel_shipped_order_rejected(self):
		order = self._order()
		lifecycle.mark_paid(order.id, 'REF-1')
		lifecycle.mark_shipped(order.id)

		with self.assertRaises(InvalidTransition):
			lifecycle.cancel_order(order.id, actor=self.buyer)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 3)

	def test_cancel_refused_while_delivery_in_progress(self):
		order = self._order()
		lifecycle.mark_paid(order.id, 'REF-1')
		Delivery.objects.create(order=order, agent=self.agent)

		with self.assertRaises(InvalidTransition):
			lifecycle.cancel_order(order.id, actor=self.buyer)
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PAID)

	def test_nothing_leaves_cancelled(self):
		order = self._order()
		lifecycle.cancel_order(order.id)

		with self.assertRaises(InvalidTransition):
			lifecycle.mark_paid(order.id, 'REF-1')
		with self.assertRaises(InvalidTransition):
			lifecycle.cancel_order(order.id)

	def test_unknown_order(self):
		with self.assertRaises(OrderNotFound):
			lifecycle.mark_paid(999999, 'REF-1')


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class OrderApiTests(TestCase):
	"""Checkout and order actions through the REST API."""

	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.buyer, cls.seller, cls.shop = _marketplace('api')
		cls.other_seller = User.objects.create_user(username='api_other_seller', password='12345678', user_type='seller')
		cls.other_shop = Shop.objects.create(seller=cls.other_seller, name='Other shop')
		cls.admin = User.objects.create_user(username='api_admin', password='12345678', user_type='admin')

	def setUp(self):
		self.product = Product.objects.create(shop=self.shop, name='Kettle', price='10.00', stock=100)
		self.other_product = Product.objects.create(shop=self.other_shop, name='Mug', price='3.50', stock=10)
		self.cart, _ = ShoppingCart.objects.get_or_create(user=self.buyer)
		self.client = APIClient()
		self.client.force_authenticate(user=self.buyer)

	def _checkout(self, **data):
		payload = {'payment_method': 'cash_on_delivery', 'shipping_address': '5 Market Road'}
		payload.update(data)
		return self.client.post('/api/orders/', data=payload, format='json')

	def test_checkout_creates_one_order_per_shop_and_clears_cart(self):
		ShoppingCartItem.objects.create(cart=self.cart, product=self.product, qty=2)
		ShoppingCartItem.objects.create(cart=self.cart, product=self.other_product, qty=4)

		res = self._checkout()
		self.assertEqual(res.status_code, 201)
		self.assertEqual(len(res.data['orders']), 2)

		totals = sorted(Decimal(o['total_amount']) for o in res.data['orders'])
		self.assertEqual(totals, [Decimal('14.00'), Decimal('20.00')])
		for data in res.data['orders']:
			self.assertEqual(data['status'], 'pending')
			self.assertTrue(data['delivery_code'])

		self.assertEqual(self.cart.items.count(), 0)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 98)

	def test_checkout_fails_when_insufficient_stock_and_cart_unchanged(self):
		Product.objects.filter(pk=self.product.pk).update(stock=1)
		ShoppingCartItem.objects.create(cart=self.cart, product=self.other_product, qty=1)
		ShoppingCartItem.objects.create(cart=self.cart, product=self.product, qty=2)

		res = self._checkout()
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'insufficient_stock')

		self.assertEqual(self.cart.items.count(), 2)
		self.other_product.refresh_from_db()
		self.assertEqual(self.other_product.stock, 10)
		self.assertFalse(Order.objects.exists())

	def test_checkout_with_empty_cart(self):
		res = self._checkout()
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'empty_cart')

	def test_checkout_requires_valid_payment_method(self):
		ShoppingCartItem.objects.create(cart=self.cart, product=self.product, qty=1)
		res = self._checkout(payment_method='barter')
		self.assertEqual(res.status_code, 400)
		self.assertIn('payment_method', res.data)

	def test_seller_cannot_checkout(self):
		client = APIClient()
		client.force_authenticate(user=self.seller)
		res = client.post('/api/orders/', data={'payment_method': 'card', 'shipping_address': 'x'}, format='json')
		self.assertEqual(res.status_code, 403)

	def _pending_order(self):
		return lifecycle.create_order(self.buyer, [CartLine(self.product.id, 1)], 'mobile_money', '5 Market Road')

	def test_admin_confirms_payment(self):
		order = self._pending_order()
		admin = APIClient()
		admin.force_authenticate(user=self.admin)

		res = admin.post(f'/api/orders/{order.id}/confirm-payment/', data={'payment_reference': 'MOMO-1'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['status'], 'paid')

		# same reference again is a no-op
		res = admin.post(f'/api/orders/{order.id}/confirm-payment/', data={'payment_reference': 'MOMO-1'}, format='json')
		self.assertEqual(res.status_code, 200)

		res = admin.post(f'/api/orders/{order.id}/confirm-payment/', data={'payment_reference': 'MOMO-2'}, format='json')
		self.assertEqual(res.status_code, 409)
		self.assertEqual(res.data['code'], 'invalid_transition')
		self.assertEqual(str(res.data['detail']), 'This action is no longer possible.')

	def test_buyer_cannot_confirm_payment(self):
		order = self._pending_order()
		res = self.client.post(f'/api/orders/{order.id}/confirm-payment/', data={'payment_reference': 'X'}, format='json')
		self.assertEqual(res.status_code, 403)

	def test_confirm_payment_unknown_order(self):
		admin = APIClient()
		admin.force_authenticate(user=self.admin)
		res = admin.post('/api/orders/999999/confirm-payment/', data={'payment_reference': 'X'}, format='json')
		self.assertEqual(res.status_code, 404)
		self.assertEqual(res.data['code'], 'order_not_found')

	def test_seller_ships_paid_order(self):
		order = self._pending_order()
		lifecycle.mark_paid(order.id, 'REF')
		seller = APIClient()
		seller.force_authenticate(user=self.seller)

		res = seller.post(f'/api/orders/{order.id}/ship/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['status'], 'shipped')

	def test_other_seller_cannot_see_or_ship_order(self):
		order = self._pending_order()
		lifecycle.mark_paid(order.id, 'REF')
		other = APIClient()
		other.force_authenticate(user=self.other_seller)

		res = other.post(f'/api/orders/{order.id}/ship/')
		self.assertEqual(res.status_code, 404)

	def test_ship_pending_order_conflicts(self):
		order = self._pending_order()
		seller = APIClient()
		seller.force_authenticate(user=self.seller)

		res = seller.post(f'/api/orders/{order.id}/ship/')
		self.assertEqual(res.status_code, 409)
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PENDING)

	def test_buyer_cancels_own_order(self):
		order = self._pending_order()
		res = self.client.post(f'/api/orders/{order.id}/cancel/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['status'], 'cancelled')
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 100)

	def test_delivery_code_hidden_from_seller(self):
		order = self._pending_order()
		seller = APIClient()
		seller.force_authenticate(user=self.seller)

		res = seller.get(f'/api/orders/{order.id}/')
		self.assertEqual(res.status_code, 200)
		self.assertIsNone(res.data['delivery_code'])

		res = self.client.get(f'/api/orders/{order.id}/')
		self.assertEqual(res.data['delivery_code'], order.delivery_code)

	def test_list_filters_by_status(self):
		paid = self._pending_order()
		lifecycle.mark_paid(paid.id, 'REF')
		self._pending_order()

		res = self.client.get('/api/orders/?status=paid')
		self.assertEqual(res.status_code, 200)
		self.assertEqual([o['id'] for o in res.data['results']], [paid.id])

	def test_statuses(self):
		res = self.client.get('/api/orders/statuses/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual([s['value'] for s in res.data], ['pending', 'paid', 'shipped', 'delivered', 'cancelled'])


class ConcurrentOrderTests(TransactionTestCase):
	"""Two buyers race for the last unit; only one of them gets it."""

	def setUp(self):
		self.buyer, _, shop = _marketplace('race')
		self.product = Product.objects.create(shop=shop, name='Last one', price='9.00', stock=1)

	def test_two_concurrent_orders_for_last_unit(self):
		barrier = threading.Barrier(2)
		results = []

		def place():
			try:
				barrier.wait()
				lifecycle.create_order(self.buyer, [CartLine(self.product.id, 1)], 'card', 'somewhere')
				results.append('ok')
			except InsufficientStock:
				results.append('insufficient')
			finally:
				connection.close()

		threads = [threading.Thread(target=place) for _ in range(2)]
		for t in threads:
			t.start()
		for t in threads:
			t.join()

		self.assertEqual(sorted(results), ['insufficient', 'ok'])
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 0)
		self.assertEqual(Order.objects.count(), 1)
