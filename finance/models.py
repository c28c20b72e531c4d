"""Database models for payment transactions."""

from django.db import models
from orders.models import Order


class PaymentProvider(models.TextChoices):
    CASH = 'cash', 'Cash on delivery'
    MTN_MOMO = 'mtn_momo', 'MTN Mobile Money'
    AIRTEL_MONEY = 'airtel_money', 'Airtel Money'
    CARD = 'card', 'Card'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    SUCCEEDED = 'succeeded', 'Succeeded'
    FAILED = 'failed', 'Failed'


class Transaction(models.Model):
    """One payment attempt for an order, identified by the gateway reference.

    An order can have several attempts (e.g. a declined mobile-money prompt
    followed by a retry); at most one of them ends up ``succeeded``.
    """

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='transactions')
    provider = models.CharField(max_length=20, choices=PaymentProvider.choices)
    reference = models.CharField(max_length=100, unique=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    redirect_url = models.URLField(max_length=500, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)
    raw_response = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['order', 'status'], name='transaction_order_status_idx'),
        ]

    def __str__(self):
        return f"TX {self.reference} for Order #{self.order_id}"

    @property
    def is_terminal(self):
        return self.status != PaymentStatus.PENDING
