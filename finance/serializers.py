"""DRF serializers for finance APIs."""

from rest_framework import serializers

from accounts.serializers import normalize_phone_number
from .models import Transaction, PaymentProvider


class TransactionSerializer(serializers.ModelSerializer):
    """Serializer for payment attempts.

    Exposes a human-readable payment status string.
    """

    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Transaction
        fields = [
            'id', 'order', 'provider', 'reference', 'amount', 'status', 'status_display',
            'redirect_url', 'failure_reason', 'created_at', 'confirmed_at',
        ]
        read_only_fields = fields


class InitiatePaymentSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    provider = serializers.ChoiceField(choices=PaymentProvider.choices, required=False)
    phone_number = serializers.CharField(max_length=20, required=False)
    payment_method_token = serializers.CharField(max_length=255, required=False)
    return_url = serializers.URLField(required=False)

    def validate_phone_number(self, value):
        return normalize_phone_number(value)
