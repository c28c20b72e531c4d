"""Products app tests."""

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from products.models import Shop, Product


class StockPrimitiveTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		seller = User.objects.create_user(username='stock_seller', password='12345678', user_type='seller')
		cls.shop = Shop.objects.create(seller=seller, name='Stock Shop')

	def setUp(self):
		self.product = Product.objects.create(shop=self.shop, name='Widget', price='3.00', stock=5)

	def test_decrement_within_stock(self):
		self.assertTrue(Product.objects.decrement_stock(self.product.id, 2))
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 3)

	def test_decrement_to_exactly_zero(self):
		self.assertTrue(Product.objects.decrement_stock(self.product.id, 5))
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 0)

	def test_decrement_beyond_stock_changes_nothing(self):
		self.assertFalse(Product.objects.decrement_stock(self.product.id, 6))
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 5)

	def test_decrement_unknown_product(self):
		self.assertFalse(Product.objects.decrement_stock(999999, 1))

	def test_restock(self):
		self.assertTrue(Product.objects.restock(self.product.id, 4))
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, 9)

	def test_negative_stock_rejected_by_database(self):
		with self.assertRaises(IntegrityError):
			with transaction.atomic():
				Product.objects.filter(pk=self.product.id).update(stock=-1)


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class CatalogApiTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.seller = User.objects.create_user(username='cat_seller', password='12345678', user_type='seller')
		cls.other_seller = User.objects.create_user(username='cat_other', password='12345678', user_type='seller')
		cls.buyer = User.objects.create_user(username='cat_buyer', password='12345678', user_type='buyer')
		cls.shop = Shop.objects.create(seller=cls.seller, name='Main Shop')
		cls.other_shop = Shop.objects.create(seller=cls.other_seller, name='Other Shop')
		cls.product = Product.objects.create(shop=cls.shop, name='Lamp', price='12.00', stock=4)
		Product.objects.create(shop=cls.shop, name='Draft', price='1.00', stock=1, is_published=False)

	def test_public_list_hides_unpublished(self):
		res = APIClient().get('/api/products/')
		self.assertEqual(res.status_code, 200)
		names = [p['name'] for p in res.data['results']]
		self.assertIn('Lamp', names)
		self.assertNotIn('Draft', names)

	def test_seller_creates_product_in_own_shop(self):
		client = APIClient()
		client.force_authenticate(user=self.seller)
		res = client.post('/api/products/', data={'shop': self.shop.id, 'name': 'Chair', 'price': '40.00', 'stock': 2}, format='json')
		self.assertEqual(res.status_code, 201)

	def test_seller_cannot_create_product_in_foreign_shop(self):
		client = APIClient()
		client.force_authenticate(user=self.seller)
		res = client.post('/api/products/', data={'shop': self.other_shop.id, 'name': 'Chair', 'price': '40.00', 'stock': 2}, format='json')
		self.assertEqual(res.status_code, 400)

	def test_buyer_cannot_create_product(self):
		client = APIClient()
		client.force_authenticate(user=self.buyer)
		res = client.post('/api/products/', data={'shop': self.shop.id, 'name': 'Chair', 'price': '40.00', 'stock': 2}, format='json')
		self.assertEqual(res.status_code, 403)

	def test_seller_creates_shop_owned_by_self(self):
		client = APIClient()
		client.force_authenticate(user=self.seller)
		res = client.post('/api/shops/', data={'name': 'Second Shop'}, format='json')
		self.assertEqual(res.status_code, 201)
		self.assertEqual(Shop.objects.get(id=res.data['id']).seller_id, self.seller.id)
