"""Accounts app tests."""

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class RegistrationTests(TestCase):
	def setUp(self):
		self.client = APIClient()

	def test_register_seller(self):
		res = self.client.post('/api/accounts/register/', data={
			'username': 'new.seller',
			'password': 'Secret123!',
			'email': 'Seller@Example.com ',
			'user_type': 'seller',
			'phone_number': '+44 7911 123456',
		}, format='json')

		self.assertEqual(res.status_code, 201)
		self.assertNotIn('password', res.data)
		user = get_user_model().objects.get(username='new.seller')
		self.assertTrue(user.is_seller)
		self.assertEqual(user.email, 'seller@example.com')
		self.assertEqual(user.phone_number, '+447911123456')
		self.assertTrue(user.check_password('Secret123!'))

	def test_defaults_to_buyer(self):
		res = self.client.post('/api/accounts/register/', data={'username': 'shopper', 'password': 'Secret123!'}, format='json')
		self.assertEqual(res.status_code, 201)
		self.assertEqual(res.data['user_type'], 'buyer')

	def test_cannot_self_register_as_admin_or_agent(self):
		for user_type in ('admin', 'delivery'):
			res = self.client.post('/api/accounts/register/', data={
				'username': f'sneaky_{user_type}', 'password': 'Secret123!', 'user_type': user_type,
			}, format='json')
			self.assertEqual(res.status_code, 400)
			self.assertIn('user_type', res.data)

	def test_rejects_bad_username(self):
		res = self.client.post('/api/accounts/register/', data={'username': 'a b', 'password': 'Secret123!'}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertIn('username', res.data)


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class ProfileTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		cls.user = get_user_model().objects.create_user(username='profile_user', password='12345678', user_type='delivery')

	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.user)

	def test_get_me(self):
		res = self.client.get('/api/accounts/profile/me/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['username'], 'profile_user')
		self.assertEqual(res.data['user_type'], 'delivery')

	def test_user_type_is_read_only(self):
		res = self.client.patch('/api/accounts/profile/me/', data={'user_type': 'admin', 'first_name': 'Sam'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.user.refresh_from_db()
		self.assertEqual(self.user.user_type, 'delivery')
		self.assertEqual(self.user.first_name, 'Sam')

	def test_invalid_phone_number(self):
		res = self.client.patch('/api/accounts/profile/me/', data={'phone_number': '123'}, format='json')
		self.assertEqual(res.status_code, 400)

	def test_errors_carry_a_code(self):
		res = APIClient().get('/api/accounts/profile/me/')
		self.assertEqual(res.status_code, 401)
		self.assertEqual(res.data['code'], 'not_authenticated')
