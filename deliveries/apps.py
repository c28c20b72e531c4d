"""Deliveries app configuration."""

from django.apps import AppConfig


class DeliveriesConfig(AppConfig):
    """Django app config for delivery assignment and hand-off."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'deliveries'
    verbose_name = 'Deliveries'
