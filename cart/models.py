"""Database models for buyer shopping carts."""

from dataclasses import dataclass

from django.db import models
from django.conf import settings
from products.models import Product  # استيراد المنتج من تطبيق المنتجات


@dataclass(frozen=True)
class CartLine:
    """Immutable (product, quantity) pair handed to order creation."""

    product_id: int
    quantity: int


class ShoppingCart(models.Model):
    """Shopping cart owned by a single buyer."""

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='cart')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Cart of {self.user.username}"

    @property
    def total_price(self):
        return sum(item.subtotal for item in self.items.all())

    def snapshot(self):
        """Return the cart contents as a tuple of ``CartLine``."""
        return tuple(
            CartLine(product_id=product_id, quantity=qty)
            for product_id, qty in self.items.order_by('id').values_list('product_id', 'qty')
        )


class ShoppingCartItem(models.Model):
    """Line item inside a shopping cart."""

    cart = models.ForeignKey(ShoppingCart, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='cart_items')
    qty = models.PositiveIntegerField(default=1)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['cart', 'product'], name='cart_item_unique_product'),
        ]

    def __str__(self):
        return f"{self.qty} x {self.product.name}"

    @property
    def subtotal(self):
        return self.product.price * self.qty
