"""Database models for delivery hand-offs."""

from django.conf import settings
from django.db import models
from django.utils import timezone
from orders.models import Order


class DeliveryStatus(models.TextChoices):
    ASSIGNED = 'assigned', 'Assigned'
    PICKED_UP = 'picked_up', 'Picked up'
    IN_TRANSIT = 'in_transit', 'In transit'
    DELIVERED = 'delivered', 'Delivered'
    FAILED = 'failed', 'Failed'


ACTIVE_STATUSES = (DeliveryStatus.ASSIGNED, DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT)


class DeliveryQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status__in=ACTIVE_STATUSES)


class Delivery(models.Model):
    """Chain of custody for one order, carried by one delivery agent.

    An order may accumulate several deliveries over time (a failed attempt
    followed by a reassignment), but never more than one that is still active.
    """

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='deliveries')
    agent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='deliveries',
        limit_choices_to={'user_type': 'delivery'},
    )
    status = models.CharField(max_length=20, choices=DeliveryStatus.choices, default=DeliveryStatus.ASSIGNED)

    assigned_at = models.DateTimeField(default=timezone.now)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    in_transit_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_deliveries',
    )
    updated_at = models.DateTimeField(auto_now=True)

    objects = DeliveryQuerySet.as_manager()

    class Meta:
        ordering = ['assigned_at', 'id']
        verbose_name_plural = 'deliveries'
        constraints = [
            models.UniqueConstraint(
                fields=['order'],
                condition=models.Q(status__in=['assigned', 'picked_up', 'in_transit']),
                name='delivery_one_active_per_order',
            ),
        ]
        indexes = [
            models.Index(fields=['agent', 'status', 'assigned_at'], name='delivery_agent_queue_idx'),
        ]

    def __str__(self):
        return f"Delivery #{self.id} for Order #{self.order_id} ({self.status})"

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES


TRACKABLE_STATUSES = (DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT)


class DeliveryPosition(models.Model):
    """A GPS fix reported by the agent while the parcel is on the road."""

    delivery = models.ForeignKey(Delivery, on_delete=models.CASCADE, related_name='positions')
    latitude = models.DecimalField(max_digits=9, decimal_places=6)
    longitude = models.DecimalField(max_digits=9, decimal_places=6)
    # metres, metres per second and degrees from north, as the device reports them
    accuracy = models.FloatField(null=True, blank=True)
    speed = models.FloatField(null=True, blank=True)
    heading = models.FloatField(null=True, blank=True)
    recorded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['recorded_at', 'id']
        indexes = [
            models.Index(fields=['delivery', 'recorded_at'], name='delivery_position_time_idx'),
        ]

    def __str__(self):
        return f"{self.latitude}, {self.longitude} for Delivery #{self.delivery_id}"
