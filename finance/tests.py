"""Finance app tests.

Gateway HTTP calls are patched at ``requests.request``; nothing leaves the
test process.
"""

from decimal import Decimal
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from cart.models import CartLine
from finance import services
from finance.gateways import AirtelMoneyGateway, CardGateway, MtnMomoGateway
from finance.models import PaymentStatus, Transaction
from orders import lifecycle
from orders.exceptions import (
	InvalidTransition,
	PaymentGatewayUnavailable,
	PaymentInitiationFailed,
	PaymentNotFound,
)
from orders.models import OrderStatus
from products.models import Shop, Product


def _response(payload=None):
	response = mock.Mock()
	response.json.return_value = payload or {}
	response.raise_for_status.return_value = None
	return response


def _momo(status='PENDING'):
	"""Fake MTN MoMo endpoints: token, request to pay and status lookup."""

	def fake_request(method, url, **kwargs):
		if url.endswith('/collection/token/'):
			return _response({'access_token': 'token'})
		if method == 'POST':
			return _response()
		return _response({'status': status})

	return fake_request


class PaymentFixtureMixin:
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.buyer = User.objects.create_user(
			username='pay_buyer', password='12345678', user_type='buyer', phone_number='+447911123456',
		)
		cls.other_buyer = User.objects.create_user(username='pay_other', password='12345678', user_type='buyer')
		cls.admin = User.objects.create_user(username='pay_admin', password='12345678', user_type='admin')
		seller = User.objects.create_user(username='pay_seller', password='12345678', user_type='seller')
		cls.shop = Shop.objects.create(seller=seller, name='Pay Shop')
		cls.product = Product.objects.create(shop=cls.shop, name='Phone', price='250.00', stock=20)

	def _order(self, method='mobile_money'):
		return lifecycle.create_order(self.buyer, [CartLine(self.product.id, 2)], method, '1 Hill Road')


class PaymentServiceTests(PaymentFixtureMixin, TestCase):
	def test_cash_on_delivery_confirms_immediately(self):
		order = self._order('cash_on_delivery')
		tx = services.initiate_payment(order.id)

		self.assertEqual(tx.provider, 'cash')
		self.assertEqual(tx.status, PaymentStatus.SUCCEEDED)
		self.assertEqual(tx.amount, Decimal('500.00'))
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PAID)
		self.assertEqual(order.payment_reference, tx.reference)

	@mock.patch('finance.gateways.requests.request')
	def test_mobile_money_stays_pending_until_confirmed(self, request):
		request.side_effect = _momo('PENDING')
		order = self._order()

		tx = services.initiate_payment(order.id)
		self.assertEqual(tx.provider, 'mtn_momo')
		self.assertEqual(tx.status, PaymentStatus.PENDING)
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PENDING)

		# a pending poll changes nothing
		tx = services.refresh_payment(tx.reference)
		self.assertEqual(tx.status, PaymentStatus.PENDING)

		request.side_effect = _momo('SUCCESSFUL')
		tx = services.refresh_payment(tx.reference)
		self.assertEqual(tx.status, PaymentStatus.SUCCEEDED)
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PAID)

	@mock.patch('finance.gateways.requests.request')
	def test_repeated_confirmation_is_ignored(self, request):
		request.side_effect = _momo()
		order = self._order()
		tx = services.initiate_payment(order.id)

		services.apply_confirmation(tx.reference, PaymentStatus.SUCCEEDED)
		tx = services.apply_confirmation(tx.reference, PaymentStatus.FAILED)

		self.assertEqual(tx.status, PaymentStatus.SUCCEEDED)
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PAID)

	@mock.patch('finance.gateways.requests.request')
	def test_failed_payment_leaves_order_pending(self, request):
		request.side_effect = _momo()
		order = self._order()
		tx = services.initiate_payment(order.id)

		tx = services.apply_confirmation(tx.reference, PaymentStatus.FAILED)
		self.assertEqual(tx.status, PaymentStatus.FAILED)
		self.assertTrue(tx.failure_reason)
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PENDING)

		# the buyer can try again
		retry = services.initiate_payment(order.id)
		self.assertNotEqual(retry.reference, tx.reference)

	@mock.patch('finance.gateways.requests.request')
	def test_gateway_failure_writes_nothing(self, request):
		request.side_effect = requests.ConnectionError('gateway down')
		order = self._order()

		with self.assertRaises(PaymentInitiationFailed):
			services.initiate_payment(order.id)

		self.assertFalse(Transaction.objects.exists())
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PENDING)

	@mock.patch('finance.gateways.requests.request')
	def test_success_for_cancelled_order_is_flagged_for_refund(self, request):
		request.side_effect = _momo()
		order = self._order()
		tx = services.initiate_payment(order.id)
		lifecycle.cancel_order(order.id, actor=self.buyer)

		tx = services.apply_confirmation(tx.reference, PaymentStatus.SUCCEEDED)

		self.assertEqual(tx.status, PaymentStatus.SUCCEEDED)
		self.assertIn('refund', tx.failure_reason)
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.CANCELLED)

	def test_provider_must_match_payment_method(self):
		order = self._order('card')
		with self.assertRaises(ValidationError):
			services.initiate_payment(order.id, provider='cash')

	def test_paid_order_cannot_be_paid_again(self):
		order = self._order('cash_on_delivery')
		services.initiate_payment(order.id)
		with self.assertRaises(InvalidTransition):
			services.initiate_payment(order.id)

	def test_unknown_reference(self):
		with self.assertRaises(PaymentNotFound):
			services.apply_confirmation('nope', PaymentStatus.SUCCEEDED)


class GatewayTests(TestCase):
	def test_status_mapping(self):
		self.assertEqual(MtnMomoGateway(config={}).normalize_status('SUCCESSFUL'), PaymentStatus.SUCCEEDED)
		self.assertEqual(MtnMomoGateway(config={}).normalize_status('REJECTED'), PaymentStatus.FAILED)
		self.assertEqual(AirtelMoneyGateway(config={}).normalize_status('TS'), PaymentStatus.SUCCEEDED)
		self.assertEqual(AirtelMoneyGateway(config={}).normalize_status('TIP'), PaymentStatus.PENDING)
		self.assertEqual(CardGateway(config={}).normalize_status('requires_payment_method'), PaymentStatus.PENDING)
		self.assertEqual(CardGateway(config={}).normalize_status('canceled'), PaymentStatus.FAILED)

	def test_card_amount_in_minor_units(self):
		self.assertEqual(CardGateway(config={'CURRENCY': 'usd'})._amount(Decimal('12.34')), 1234)
		self.assertEqual(CardGateway(config={'CURRENCY': 'XAF'})._amount(Decimal('1500.00')), 1500)

	def test_callback_references(self):
		self.assertEqual(MtnMomoGateway(config={}).callback_reference({'referenceId': 'abc'}), 'abc')
		self.assertEqual(AirtelMoneyGateway(config={}).callback_reference({'transaction': {'id': 'TXN1'}}), 'TXN1')
		self.assertEqual(CardGateway(config={}).callback_reference({'data': {'object': {'id': 'pi_1'}}}), 'pi_1')

	def test_callback_references_tolerate_odd_shapes(self):
		self.assertIsNone(AirtelMoneyGateway(config={}).callback_reference({'transaction': ['TXN1']}))
		self.assertIsNone(CardGateway(config={}).callback_reference({'data': 'pi_1'}))
		self.assertEqual(CardGateway(config={}).callback_reference({'data': None, 'reference': 'pi_2'}), 'pi_2')


class GatewayResponseTests(PaymentFixtureMixin, TestCase):
	"""Gateways answering 2xx with a body we cannot use."""

	@mock.patch('finance.gateways.requests.request')
	def test_mtn_token_without_access_token(self, request):
		request.return_value = _response({'error': 'bad credentials'})
		order = self._order()

		with self.assertRaises(PaymentInitiationFailed):
			services.initiate_payment(order.id)
		self.assertFalse(Transaction.objects.exists())

	@mock.patch('finance.gateways.requests.request')
	def test_airtel_payment_body_is_not_an_object(self, request):
		def fake_request(method, url, **kwargs):
			if url.endswith('/auth/oauth2/token'):
				return _response({'access_token': 'token'})
			return _response(['accepted'])

		request.side_effect = fake_request
		order = self._order()

		with self.assertRaises(PaymentInitiationFailed):
			services.initiate_payment(order.id, provider='airtel_money')
		self.assertFalse(Transaction.objects.exists())

	@mock.patch('finance.gateways.requests.request')
	def test_card_intent_without_id(self, request):
		request.return_value = _response({'status': 'requires_action'})
		order = self._order('card')

		with self.assertRaises(PaymentInitiationFailed):
			services.initiate_payment(order.id)
		self.assertFalse(Transaction.objects.exists())
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PENDING)

	@mock.patch('finance.gateways.requests.request')
	def test_status_poll_with_non_json_body(self, request):
		request.side_effect = _momo()
		order = self._order()
		tx = services.initiate_payment(order.id)

		broken = _response()
		broken.json.side_effect = ValueError('Expecting value: line 1 column 1 (char 0)')
		request.side_effect = None
		request.return_value = broken

		with self.assertRaises(PaymentGatewayUnavailable):
			services.refresh_payment(tx.reference)
		tx.refresh_from_db()
		self.assertEqual(tx.status, PaymentStatus.PENDING)

	@mock.patch('finance.gateways.requests.request')
	def test_airtel_status_with_unexpected_shape(self, request):
		def fake_request(method, url, **kwargs):
			if url.endswith('/auth/oauth2/token'):
				return _response({'access_token': 'token'})
			return _response({'data': ['not', 'an', 'object']})

		request.side_effect = fake_request
		self.assertEqual(AirtelMoneyGateway().confirm('TXN1'), PaymentStatus.PENDING)


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class PaymentApiTests(PaymentFixtureMixin, TestCase):
	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.buyer)

	def test_initiate_cash_payment(self):
		order = self._order('cash_on_delivery')
		res = self.client.post('/api/payments/initiate/', data={'order_id': order.id}, format='json')

		self.assertEqual(res.status_code, 201)
		self.assertEqual(res.data['status'], 'succeeded')
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PAID)

	@mock.patch('finance.gateways.requests.request')
	def test_callback_polls_gateway_before_marking_paid(self, request):
		request.side_effect = _momo('PENDING')
		order = self._order()
		res = self.client.post(
			'/api/payments/initiate/',
			data={'order_id': order.id, 'phone_number': '+44 7911 123456'},
			format='json',
		)
		self.assertEqual(res.status_code, 201)
		reference = res.data['reference']

		# the callback body claims success but the gateway still says pending
		anonymous = APIClient()
		res = anonymous.post(
			'/api/payments/callback/mtn_momo/',
			data={'referenceId': reference, 'status': 'SUCCESSFUL'},
			format='json',
		)
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['status'], 'pending')
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PENDING)

		request.side_effect = _momo('SUCCESSFUL')
		res = anonymous.post('/api/payments/callback/mtn_momo/', data={'referenceId': reference}, format='json')
		self.assertEqual(res.data['status'], 'succeeded')

		# delivered twice by the provider
		res = anonymous.post('/api/payments/callback/mtn_momo/', data={'referenceId': reference}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(Transaction.objects.filter(order=order).count(), 1)
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PAID)

	@mock.patch('finance.gateways.requests.request')
	def test_gateway_down_returns_bad_gateway(self, request):
		request.side_effect = requests.Timeout('slow')
		order = self._order()
		res = self.client.post('/api/payments/initiate/', data={'order_id': order.id}, format='json')

		self.assertEqual(res.status_code, 502)
		self.assertEqual(res.data['code'], 'payment_initiation_failed')
		self.assertFalse(Transaction.objects.exists())

	def test_invalid_phone_number(self):
		order = self._order()
		res = self.client.post(
			'/api/payments/initiate/', data={'order_id': order.id, 'phone_number': '12'}, format='json',
		)
		self.assertEqual(res.status_code, 400)
		self.assertIn('phone_number', res.data)

	def test_cannot_pay_someone_elses_order(self):
		order = self._order('cash_on_delivery')
		client = APIClient()
		client.force_authenticate(user=self.other_buyer)

		res = client.post('/api/payments/initiate/', data={'order_id': order.id}, format='json')
		self.assertEqual(res.status_code, 404)
		self.assertEqual(res.data['code'], 'order_not_found')

	def test_callback_for_unknown_reference(self):
		res = APIClient().post('/api/payments/callback/mtn_momo/', data={'referenceId': 'missing'}, format='json')
		self.assertEqual(res.status_code, 404)
		self.assertEqual(res.data['code'], 'payment_not_found')

	def test_callback_body_must_be_an_object(self):
		res = APIClient().post('/api/payments/callback/mtn_momo/', data=[1, 2], format='json')
		self.assertEqual(res.status_code, 400)
		self.assertIn('detail', res.data)

	def test_payments_list_is_scoped_to_buyer(self):
		services.initiate_payment(self._order('cash_on_delivery').id)
		client = APIClient()
		client.force_authenticate(user=self.other_buyer)

		self.assertEqual(client.get('/api/payments/').data['count'], 0)
		self.assertEqual(self.client.get('/api/payments/').data['count'], 1)
