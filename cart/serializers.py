"""DRF serializers for cart APIs."""

from rest_framework import serializers
from .models import ShoppingCart, ShoppingCartItem


class ShoppingCartItemSerializer(serializers.ModelSerializer):
    """Serializer for cart line items.

    Normalizes field names for the frontend (e.g., ``qty`` -> ``quantity``).
    """

    product_name = serializers.ReadOnlyField(source='product.name')
    shop = serializers.ReadOnlyField(source='product.shop_id')
    price = serializers.DecimalField(source='product.price', max_digits=10, decimal_places=2, read_only=True)

    # الكمية: التحويل من 'qty' في الموديل إلى 'quantity'
    quantity = serializers.IntegerField(source='qty', min_value=1)

    # المخزون: expose stock for UI limits
    stock = serializers.IntegerField(source='product.stock', read_only=True)

    subtotal = serializers.SerializerMethodField()

    class Meta:
        model = ShoppingCartItem
        fields = ['id', 'product', 'product_name', 'shop', 'price', 'stock', 'quantity', 'subtotal']

    def validate(self, attrs):
        """Validate quantity against product stock and published visibility."""
        product = attrs.get('product')
        if product is None and self.instance is not None:
            product = self.instance.product

        desired_qty = attrs.get('qty')
        if desired_qty is None and self.instance is not None:
            desired_qty = self.instance.qty

        if product is None:
            return attrs

        # Do not allow adding unpublished products to carts.
        if not product.is_published or not product.shop.is_active:
            raise serializers.ValidationError({'product': 'This product is not available.'})

        if desired_qty is not None and desired_qty > product.stock:
            raise serializers.ValidationError({'quantity': f'Only {product.stock} item(s) available in stock.'})

        return attrs

    def get_subtotal(self, obj):
        return obj.subtotal


class ShoppingCartSerializer(serializers.ModelSerializer):
    """Serializer for the shopping cart including nested items."""

    items = ShoppingCartItemSerializer(many=True, read_only=True)
    total_price = serializers.SerializerMethodField()

    class Meta:
        model = ShoppingCart
        fields = ['id', 'user', 'items', 'total_price']

    def get_total_price(self, obj):
        return obj.total_price
