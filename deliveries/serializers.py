"""DRF serializers for delivery APIs."""

from rest_framework import serializers

from accounts.serializers import UserSummarySerializer
from orders.serializers import OrderSummarySerializer
from .models import Delivery, DeliveryPosition, DeliveryStatus


class DeliverySerializer(serializers.ModelSerializer):
    """Delivery with the order details an agent needs on the road."""

    order = OrderSummarySerializer(read_only=True)
    agent = UserSummarySerializer(read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Delivery
        fields = [
            'id', 'order', 'agent', 'status', 'status_display',
            'assigned_at', 'picked_up_at', 'in_transit_at', 'delivered_at', 'failed_at',
            'notes',
        ]
        read_only_fields = fields


class AssignDeliverySerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    agent_id = serializers.IntegerField()


class DeliveryStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=DeliveryStatus.choices)
    code = serializers.CharField(max_length=16, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['status'] == DeliveryStatus.DELIVERED and not attrs.get('code'):
            raise serializers.ValidationError({'code': 'The delivery code is required to complete a delivery.'})
        return attrs


class AgentSerializer(UserSummarySerializer):
    """Delivery agent with the number of deliveries currently in progress."""

    active_deliveries = serializers.IntegerField(read_only=True)

    class Meta(UserSummarySerializer.Meta):
        fields = UserSummarySerializer.Meta.fields + ['active_deliveries']


class DeliveryPositionSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryPosition
        fields = ['id', 'latitude', 'longitude', 'accuracy', 'speed', 'heading', 'recorded_at']
        read_only_fields = fields


class RecordPositionSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    accuracy = serializers.FloatField(min_value=0, required=False, allow_null=True)
    speed = serializers.FloatField(min_value=0, required=False, allow_null=True)
    heading = serializers.FloatField(min_value=0, max_value=360, required=False, allow_null=True)
