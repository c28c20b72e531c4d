"""Products app configuration."""

from django.apps import AppConfig


class ProductsConfig(AppConfig):
    """Django app config for the products domain."""

    name = 'products'
