"""Database models for shops and the product catalog."""

from django.db import models
from django.db.models import F
from django.conf import settings # لاستدعاء موديل المستخدم بأمان


class Shop(models.Model):
    """A seller's storefront. Every order is placed against exactly one shop."""

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='shops',
        limit_choices_to={'user_type': 'seller'}
    )
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, blank=True)
    address = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.name} (Seller: {self.seller.username})"


class ProductQuerySet(models.QuerySet):
    """Stock primitives.

    Both are single UPDATE statements so concurrent checkouts cannot
    interleave a read and a write on the same stock counter.
    """

    def decrement_stock(self, product_id, qty) -> bool:
        """Take ``qty`` units if at least that many are left.

        Runs ``UPDATE ... SET stock = stock - qty WHERE id = ? AND stock >= qty``;
        returns False when no row matched (unknown product or not enough stock).
        """
        updated = self.filter(pk=product_id, stock__gte=qty).update(stock=F('stock') - qty)
        return updated == 1

    def restock(self, product_id, qty) -> bool:
        updated = self.filter(pk=product_id).update(stock=F('stock') + qty)
        return updated == 1


class Product(models.Model):
    """Purchasable product sold by a shop."""

    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    stock = models.IntegerField(default=0)
    is_published = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProductQuerySet.as_manager()

    class Meta:
        ordering = ['id']
        constraints = [
            models.CheckConstraint(condition=models.Q(stock__gte=0), name='product_stock_non_negative'),
        ]
        indexes = [
            models.Index(fields=['shop', 'is_published'], name='product_shop_published_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.shop.name})"
