"""Cart app tests."""

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from cart.models import CartLine, ShoppingCart, ShoppingCartItem
from products.models import Shop, Product


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class CartStockValidationTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.buyer = User.objects.create_user(
			username='cart_buyer',
			email='cart_buyer@example.com',
			password='12345678',
			user_type='buyer',
		)
		cls.seller = User.objects.create_user(
			username='cart_seller',
			email='cart_seller@example.com',
			password='12345678',
			user_type='seller',
		)
		cls.shop = Shop.objects.create(seller=cls.seller, name='Cart Shop')
		cls.product = Product.objects.create(shop=cls.shop, name='CartProduct', price='10.00', stock=2)

	def test_cannot_add_more_than_stock(self):
		client = APIClient()
		client.force_authenticate(user=self.buyer)
		res = client.post('/api/cart/cart-items/', data={'product': self.product.id, 'quantity': 3}, format='json')
		self.assertEqual(res.status_code, 400)

	def test_cannot_update_quantity_more_than_stock(self):
		client = APIClient()
		client.force_authenticate(user=self.buyer)
		res1 = client.post('/api/cart/cart-items/', data={'product': self.product.id, 'quantity': 1}, format='json')
		self.assertEqual(res1.status_code, 201)
		item_id = res1.data.get('id')
		self.assertIsNotNone(item_id)

		# update to 3 (exceeds stock=2)
		res2 = client.patch(f'/api/cart/cart-items/{item_id}/', data={'quantity': 3}, format='json')
		self.assertEqual(res2.status_code, 400)

	def test_adding_same_product_merges_quantity(self):
		client = APIClient()
		client.force_authenticate(user=self.buyer)
		client.post('/api/cart/cart-items/', data={'product': self.product.id, 'quantity': 1}, format='json')
		res = client.post('/api/cart/cart-items/', data={'product': self.product.id, 'quantity': 1}, format='json')
		self.assertEqual(res.status_code, 201)
		self.assertEqual(res.data['quantity'], 2)
		self.assertEqual(ShoppingCartItem.objects.filter(cart__user=self.buyer).count(), 1)

	def test_unpublished_product_rejected(self):
		hidden = Product.objects.create(shop=self.shop, name='Hidden', price='5.00', stock=5, is_published=False)
		client = APIClient()
		client.force_authenticate(user=self.buyer)
		res = client.post('/api/cart/cart-items/', data={'product': hidden.id, 'quantity': 1}, format='json')
		self.assertEqual(res.status_code, 400)

	def test_seller_cannot_use_cart(self):
		client = APIClient()
		client.force_authenticate(user=self.seller)
		res = client.get('/api/cart/')
		self.assertEqual(res.status_code, 403)

	def test_get_cart_creates_empty_cart(self):
		client = APIClient()
		client.force_authenticate(user=self.buyer)
		res = client.get('/api/cart/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['items'], [])
		self.assertTrue(ShoppingCart.objects.filter(user=self.buyer).exists())


class CartSnapshotTests(TestCase):
	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.buyer = User.objects.create_user(username='snap_buyer', password='12345678', user_type='buyer')
		seller = User.objects.create_user(username='snap_seller', password='12345678', user_type='seller')
		shop = Shop.objects.create(seller=seller, name='Snap Shop')
		cls.p1 = Product.objects.create(shop=shop, name='A', price='1.00', stock=10)
		cls.p2 = Product.objects.create(shop=shop, name='B', price='2.00', stock=10)

	def test_snapshot_lists_lines_in_insertion_order(self):
		cart = ShoppingCart.objects.create(user=self.buyer)
		ShoppingCartItem.objects.create(cart=cart, product=self.p2, qty=3)
		ShoppingCartItem.objects.create(cart=cart, product=self.p1, qty=1)

		lines = cart.snapshot()
		self.assertEqual(lines, (CartLine(self.p2.id, 3), CartLine(self.p1.id, 1)))

	def test_snapshot_is_detached_from_later_edits(self):
		cart = ShoppingCart.objects.create(user=self.buyer)
		ShoppingCartItem.objects.create(cart=cart, product=self.p1, qty=1)
		lines = cart.snapshot()
		cart.items.all().delete()
		self.assertEqual(len(lines), 1)
