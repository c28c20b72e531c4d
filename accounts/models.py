"""Database models for marketplace users."""

from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Custom user model.

    Extends Django's :class:`~django.contrib.auth.models.AbstractUser` with:
    - ``user_type`` to separate buyer, seller, delivery agent and admin flows
    - optional ``phone_number`` (used for mobile-money and delivery contact)
    """

    BUYER = 'buyer'
    SELLER = 'seller'
    DELIVERY = 'delivery'
    ADMIN = 'admin'

    USER_TYPE_CHOICES = (
        (BUYER, 'Buyer'),
        (SELLER, 'Seller'),
        (DELIVERY, 'Delivery agent'),
        (ADMIN, 'Administrator'),
    )
    phone_number = models.CharField(max_length=20, null=True, blank=True)
    user_type = models.CharField(max_length=10, choices=USER_TYPE_CHOICES, default=BUYER)

    def __str__(self):
        return self.username

    @property
    def is_buyer(self):
        return self.user_type == self.BUYER

    @property
    def is_seller(self):
        return self.user_type == self.SELLER

    @property
    def is_delivery_agent(self):
        return self.user_type == self.DELIVERY

    @property
    def is_platform_admin(self):
        """Admins are either flagged by role or Django staff/superusers."""
        return self.user_type == self.ADMIN or self.is_staff or self.is_superuser
