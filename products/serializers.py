"""Serializers for shops and the product catalog."""

from rest_framework import serializers

from .models import Shop, Product


class ShopSerializer(serializers.ModelSerializer):
    """Shop serializer; the seller is always the authenticated user."""

    seller_name = serializers.ReadOnlyField(source='seller.username')

    class Meta:
        model = Shop
        fields = ['id', 'name', 'phone', 'address', 'is_active', 'seller', 'seller_name', 'created_at']
        read_only_fields = ['seller', 'created_at']


class ProductSerializer(serializers.ModelSerializer):
    """Product serializer including shop name and live stock."""

    shop_name = serializers.ReadOnlyField(source='shop.name')

    class Meta:
        model = Product
        fields = [
            'id', 'shop', 'shop_name', 'name', 'description',
            'price', 'stock', 'is_published', 'created_at', 'updated_at',
        ]
        read_only_fields = ['created_at', 'updated_at']

    def validate_price(self, value):
        if value is None or value <= 0:
            raise serializers.ValidationError('Price must be greater than zero.')
        return value

    def validate_stock(self, value):
        if value is None or value < 0:
            raise serializers.ValidationError('Stock cannot be negative.')
        return value

    def validate_shop(self, shop):
        """Sellers can only list products in their own shops."""
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        if user is not None and shop.seller_id != user.id:
            raise serializers.ValidationError('You can only add products to your own shops.')
        return shop
