"""In-app notifications produced by order and delivery events."""

from django.conf import settings
from django.db import models


class Notification(models.Model):
    """A message for one user, e.g. ``order.paid`` or ``delivery.assigned``."""

    recipient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    kind = models.CharField(max_length=50)
    message = models.CharField(max_length=255)
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['recipient', 'read_at'], name='notification_unread_idx'),
        ]

    def __str__(self):
        return f"{self.kind} -> {self.recipient}"

    @property
    def is_read(self):
        return self.read_at is not None
