"""Cart APIs.

Carts belong to buyer accounts only; sellers, delivery agents and admins
never check out.
"""

from rest_framework import viewsets, status, mixins
from rest_framework.response import Response
from rest_framework.exceptions import ValidationError
from django.db import transaction

from accounts.permissions import IsBuyer
from .models import ShoppingCart, ShoppingCartItem
from .serializers import ShoppingCartSerializer, ShoppingCartItemSerializer


class CartViewSet(viewsets.GenericViewSet):
    """Cart API: the buyer's single cart, created on first access."""

    serializer_class = ShoppingCartSerializer
    permission_classes = [IsBuyer]

    def get_queryset(self):
        """Return cart queryset scoped to the current user."""
        return ShoppingCart.objects.filter(user=self.request.user)

    def list(self, request, *args, **kwargs):
        """Return a single cart representation (create if missing)."""
        cart, _ = ShoppingCart.objects.get_or_create(user=request.user)
        serializer = self.get_serializer(cart)
        return Response(serializer.data)


class CartItemViewSet(viewsets.ModelViewSet):
    """Cart item API for adding/updating/removing items from the cart."""

    serializer_class = ShoppingCartItemSerializer
    permission_classes = [IsBuyer]

    def get_queryset(self):
        """Return cart items scoped to the current user."""
        return (
            ShoppingCartItem.objects.filter(cart__user=self.request.user)
            .select_related('product', 'product__shop')
            .order_by('id')
        )

    def create(self, request, *args, **kwargs):
        """Add an item to the cart, merging quantity if it already exists."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cart, _ = ShoppingCart.objects.get_or_create(user=request.user)
        product = serializer.validated_data['product']
        incoming_qty = serializer.validated_data.get('qty') or 1

        # Merge with existing line, but do not exceed available stock.
        with transaction.atomic():
            cart_item = ShoppingCartItem.objects.select_for_update().filter(cart=cart, product=product).first()
            if cart_item is None:
                cart_item = ShoppingCartItem(cart=cart, product=product, qty=incoming_qty)
            else:
                cart_item.qty = cart_item.qty + incoming_qty

            # Re-run stock validation against the final quantity.
            final_serializer = self.get_serializer(cart_item, data={'quantity': cart_item.qty}, partial=True)
            final_serializer.is_valid(raise_exception=True)
            final_serializer.save()

        result_serializer = self.get_serializer(cart_item)
        return Response(result_serializer.data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        """Update cart item quantity with stock validation."""
        # Do not allow switching the product via update.
        if isinstance(request.data, dict) and 'product' in request.data:
            raise ValidationError({'product': 'Changing product is not allowed.'})
        kwargs['partial'] = True
        return super().update(request, *args, **kwargs)
