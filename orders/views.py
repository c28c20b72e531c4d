"""Orders API views.

Includes checkout creation, payment confirmation, shipping, cancellation and
list endpoints. State changes are delegated to ``orders.lifecycle``.
"""

from django.http import Http404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, mixins, permissions, filters, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response

from accounts.permissions import IsBuyer, IsPlatformAdmin
from products.views import StandardResultsSetPagination # هنستعمل نفس الترقيم
from . import lifecycle
from .exceptions import OrderNotFound
from .models import Order, OrderStatus
from .serializers import OrderSerializer, CheckoutSerializer, ConfirmPaymentSerializer


class OrderViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Order API endpoints.

    - Buyers create orders from their cart and see their own orders.
    - Sellers see orders placed with their shops and ship them.
    - Delivery agents see the orders they carry.
    - Admins see everything and confirm payments.
    """

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = OrderSerializer
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['status', 'payment_method', 'shop']
    ordering_fields = ['created_at', 'total_amount']
    ordering = ['-created_at']
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        """Base queryset for the authenticated user, scoped by role."""
        user = self.request.user
        orders = Order.objects.select_related('buyer', 'shop').prefetch_related('items__product')

        if getattr(user, 'is_platform_admin', False):
            return orders
        if getattr(user, 'user_type', None) == 'seller':
            return orders.filter(shop__seller=user)
        if getattr(user, 'user_type', None) == 'delivery':
            return orders.filter(deliveries__agent=user).distinct()
        return orders.filter(buyer=user)

    def get_object(self):
        try:
            return super().get_object()
        except Http404:
            raise OrderNotFound()

    def create(self, request, *args, **kwargs):
        """Checkout: one order per shop in the buyer's cart."""
        if not IsBuyer().has_permission(request, self):
            raise PermissionDenied(IsBuyer.message)

        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        orders = lifecycle.checkout_cart(
            request.user,
            payment_method=data['payment_method'],
            shipping_address=data['shipping_address'],
            cart_id=data.get('cart_id'),
        )
        output = self.get_serializer(orders, many=True)
        return Response({'orders': output.data}, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='confirm-payment', permission_classes=[IsPlatformAdmin])
    def confirm_payment(self, request, pk=None):
        """Admin/system: record an out-of-band payment confirmation."""
        serializer = ConfirmPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = lifecycle.mark_paid(pk, serializer.validated_data['payment_reference'], actor=request.user)
        return Response(self.get_serializer(order).data)

    @action(detail=True, methods=['post'])
    def ship(self, request, pk=None):
        """Seller of the order's shop (or an admin) marks it shipped."""
        order = self.get_object()
        user = request.user
        if not user.is_platform_admin and order.shop.seller_id != user.id:
            raise PermissionDenied('Only the shop owner can ship this order.')
        order = lifecycle.mark_shipped(order.pk, actor=user)
        return Response(self.get_serializer(order).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Buyer, shop owner or admin cancels a pending or paid order."""
        order = self.get_object()
        user = request.user
        allowed = (
            user.is_platform_admin
            or order.buyer_id == user.id
            or order.shop.seller_id == user.id
        )
        if not allowed:
            raise PermissionDenied('You cannot cancel this order.')
        order = lifecycle.cancel_order(order.pk, actor=user)
        return Response(self.get_serializer(order).data)

    @action(detail=False, methods=['get'], url_path='statuses')
    def statuses(self, request):
        """List all order statuses for dropdowns."""
        return Response([{'value': value, 'label': label} for value, label in OrderStatus.choices])
