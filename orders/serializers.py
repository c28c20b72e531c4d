"""DRF serializers for orders APIs."""

from rest_framework import serializers
from .models import Order, OrderItem, PaymentMethod


class OrderItemSerializer(serializers.ModelSerializer):
    """
    عرض تفاصيل المنتجات المشتراة داخل كل طلب.
    """
    product_name = serializers.ReadOnlyField(source='product.name')
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'product_name', 'quantity', 'unit_price', 'subtotal', 'is_cancelled']
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """
    المحول الرئيسي للطلب: يربط بيانات الطلب بمنتجاته وحالته.

    The delivery code is only shown to the buyer who placed the order and to
    administrators; sellers and delivery agents never see it.
    """
    items = OrderItemSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    buyer_username = serializers.ReadOnlyField(source='buyer.username')
    shop_name = serializers.ReadOnlyField(source='shop.name')
    delivery_code = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id',
            'buyer',
            'buyer_username',
            'shop',
            'shop_name',
            'items',
            'total_amount',
            'payment_method',
            'status',
            'status_display',
            'shipping_address',
            'delivery_code',
            'is_delivered',
            'payment_reference',
            'paid_at',
            'shipped_at',
            'delivered_at',
            'cancelled_at',
            'created_at',
        ]
        read_only_fields = fields

    def get_delivery_code(self, obj):
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated:
            return None
        if obj.buyer_id == user.id or getattr(user, 'is_platform_admin', False):
            return obj.delivery_code
        return None


class OrderSummarySerializer(serializers.ModelSerializer):
    """Compact order view embedded in delivery payloads."""

    buyer_username = serializers.ReadOnlyField(source='buyer.username')
    buyer_phone = serializers.ReadOnlyField(source='buyer.phone_number')
    shop_name = serializers.ReadOnlyField(source='shop.name')
    shop_phone = serializers.ReadOnlyField(source='shop.phone')
    shop_address = serializers.ReadOnlyField(source='shop.address')

    class Meta:
        model = Order
        fields = [
            'id', 'status', 'total_amount', 'payment_method', 'shipping_address',
            'buyer_username', 'buyer_phone', 'shop_name', 'shop_phone', 'shop_address',
            'is_delivered', 'created_at',
        ]
        read_only_fields = fields


class CheckoutSerializer(serializers.Serializer):
    cart_id = serializers.IntegerField(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    shipping_address = serializers.CharField(max_length=255)


class ConfirmPaymentSerializer(serializers.Serializer):
    payment_reference = serializers.CharField(max_length=100)

