"""Database models for orders and order items."""

from django.conf import settings
from django.db import models
from products.models import Shop, Product


class OrderStatus(models.TextChoices):
    """Order lifecycle states. ``delivered`` and ``cancelled`` are terminal."""

    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'
    SHIPPED = 'shipped', 'Shipped'
    DELIVERED = 'delivered', 'Delivered'
    CANCELLED = 'cancelled', 'Cancelled'


class PaymentMethod(models.TextChoices):
    MOBILE_MONEY = 'mobile_money', 'Mobile money'
    CASH_ON_DELIVERY = 'cash_on_delivery', 'Cash on delivery'
    CARD = 'card', 'Card'


class Order(models.Model):
    """A buyer's order against a single shop.

    Prices are frozen on the items at creation time; ``total_amount`` is the
    sum of ``quantity * unit_price`` and is never recomputed from the catalog.
    """

    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')
    shop = models.ForeignKey(Shop, on_delete=models.PROTECT, related_name='orders')
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    shipping_address = models.CharField(max_length=255)

    # كود التسليم: يظهر للمشتري ويستخدم مرة واحدة فقط
    delivery_code = models.CharField(max_length=16, unique=True)
    delivery_code_consumed_at = models.DateTimeField(null=True, blank=True)
    is_delivered = models.BooleanField(default=False)

    payment_reference = models.CharField(max_length=100, null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cancelled_orders',
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['buyer', 'created_at'], name='order_buyer_created_idx'),
            models.Index(fields=['shop', 'status'], name='order_shop_status_idx'),
        ]

    def __str__(self):
        return f"Order #{self.id} - {self.buyer.username}"

    @property
    def is_terminal(self):
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class OrderItem(models.Model):
    """One product line inside an order, with the unit price frozen at checkout."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    is_cancelled = models.BooleanField(default=False)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity} x {self.product.name} (Order #{self.order_id})"

    @property
    def subtotal(self):
        return self.unit_price * self.quantity
