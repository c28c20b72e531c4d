"""Notifications app configuration and signal registration."""

from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    """Django app config for notifications; connects the event receivers."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'notifications'

    def ready(self):
        """Import signal receivers on app ready."""
        import notifications.receivers  # noqa: F401
