"""Seed sample marketplace data.

Creates:
- Sellers, each with one shop and a handful of products
- Buyers (with phone numbers for mobile money) and delivery agents
- Orders placed through the real lifecycle, some of them paid, assigned,
  delivered or cancelled so every screen has something to show

Marketplace tables are reset first; superusers are preserved.

Usage:
  python manage.py seed_data
  python manage.py seed_data --products 40 --orders 25 --seed 7
"""

import random
from decimal import Decimal, ROUND_HALF_UP

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from faker import Faker

from accounts.models import User
from cart.models import CartLine, ShoppingCart
from deliveries import handoff
from deliveries.models import Delivery
from finance.models import Transaction
from notifications.models import Notification
from orders import lifecycle
from orders.exceptions import InsufficientStock
from orders.models import Order, OrderItem, PaymentMethod
from products.models import Shop, Product


PRODUCT_NOUNS = [
    'Rice 5kg', 'Cooking Oil 3L', 'Solar Lantern', 'Phone Charger', 'Radio', 'Blender',
    'School Bag', 'Sandals', 'Kettle', 'Mosquito Net', 'Water Filter', 'Feature Phone',
]


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


class Command(BaseCommand):
    help = 'Reset and seed the database with sample marketplace data.'

    def add_arguments(self, parser):
        parser.add_argument('--sellers', type=int, default=4, help='Number of sellers (one shop each).')
        parser.add_argument('--buyers', type=int, default=8, help='Number of buyers.')
        parser.add_argument('--agents', type=int, default=3, help='Number of delivery agents.')
        parser.add_argument('--products', type=int, default=24, help='Number of products across all shops.')
        parser.add_argument('--orders', type=int, default=15, help='Number of orders to place.')
        parser.add_argument('--seed', type=int, default=None, help='Random seed for reproducible data.')

    def handle(self, *args, **options):
        if options.get('seed') is not None:
            random.seed(int(options['seed']))
            Faker.seed(int(options['seed']))

        if options['sellers'] < 1 or options['buyers'] < 1 or options['agents'] < 1:
            raise CommandError('--sellers, --buyers and --agents must be at least 1.')
        if options['products'] < options['sellers']:
            raise CommandError('--products must be at least --sellers.')

        fake = Faker('en_US')
        # Precompute once to avoid expensive hashing per user.
        password = make_password('Password123!')

        with transaction.atomic():
            self._reset()
            sellers = self._users(fake, User.SELLER, options['sellers'], password)
            buyers = self._users(fake, User.BUYER, options['buyers'], password)
            agents = self._users(fake, User.DELIVERY, options['agents'], password)
            products = self._catalog(fake, sellers, options['products'])

        # Orders are placed outside the seeding transaction so each one
        # commits on its own, exactly like a real checkout.
        placed = self._orders(fake, buyers, agents, products, options['orders'])

        self.stdout.write(self.style.SUCCESS(
            f"Seeded {len(sellers)} sellers, {len(buyers)} buyers, {len(agents)} agents, "
            f"{len(products)} products and {placed} orders. Password for every user: Password123!"
        ))

    def _reset(self):
        Notification.objects.all().delete()
        Delivery.objects.all().delete()
        Transaction.objects.all().delete()
        OrderItem.objects.all().delete()
        Order.objects.all().delete()
        ShoppingCart.objects.all().delete()
        Product.objects.all().delete()
        Shop.objects.all().delete()
        User.objects.filter(is_superuser=False).delete()

    def _users(self, fake, user_type, count, password):
        users = []
        for i in range(count):
            first, last = fake.first_name(), fake.last_name()
            users.append(User(
                username=f'{user_type}{i + 1}',
                first_name=first,
                last_name=last,
                email=f'{user_type}{i + 1}@example.com',
                user_type=user_type,
                phone_number=f'+2567{random.randint(0, 9)}{random.randint(1000000, 9999999)}',
                password=password,
            ))
        return User.objects.bulk_create(users)

    def _catalog(self, fake, sellers, count):
        shops = [
            Shop.objects.create(
                seller=seller,
                name=f"{seller.last_name}'s {fake.word().title()} Store",
                phone=seller.phone_number,
                address=fake.street_address(),
            )
            for seller in sellers
        ]
        products = []
        for i in range(count):
            noun = random.choice(PRODUCT_NOUNS)
            products.append(Product(
                shop=shops[i % len(shops)],
                name=f'{noun} {fake.color_name()}',
                description=fake.sentence(nb_words=12),
                price=_money(random.randint(500, 150000) / 100),
                stock=random.randint(0, 40),
                is_published=random.random() > 0.1,
            ))
        return Product.objects.bulk_create(products)

    def _orders(self, fake, buyers, agents, products, count):
        by_shop = {}
        for product in products:
            if product.is_published and product.stock > 0:
                by_shop.setdefault(product.shop_id, []).append(product)
        if not by_shop:
            self.stdout.write(self.style.WARNING('No orderable products; skipping orders.'))
            return 0

        placed = 0
        for _ in range(count):
            shop_products = random.choice(list(by_shop.values()))
            picks = random.sample(shop_products, k=min(len(shop_products), random.randint(1, 3)))
            lines = [CartLine(p.id, random.randint(1, 2)) for p in picks]
            buyer = random.choice(buyers)
            method = random.choice(PaymentMethod.values)
            try:
                order = lifecycle.create_order(buyer, lines, method, fake.address().replace('\n', ', '))
            except InsufficientStock:
                continue
            placed += 1

            outcome = random.random()
            if outcome < 0.15:
                lifecycle.cancel_order(order.id, actor=buyer)
                continue
            if outcome < 0.35:
                continue

            lifecycle.mark_paid(order.id, f'SEED-{order.id}')
            if outcome < 0.5:
                continue

            agent = random.choice(agents)
            delivery = handoff.assign_delivery(order.id, agent)
            if outcome > 0.75:
                for step in ('picked_up', 'in_transit'):
                    handoff.update_delivery_status(delivery.id, step, agent=agent)
                for _ in range(3):
                    lat, lng = fake.coordinate(center=0.3476, radius=0.1), fake.coordinate(center=32.5825, radius=0.1)
                    handoff.record_position(delivery.id, agent, lat, lng, accuracy=random.uniform(3, 25))
                handoff.update_delivery_status(delivery.id, 'delivered', code=order.delivery_code, agent=agent)
        return placed
