"""Payment API views: initiation, gateway callbacks and status polling."""

from rest_framework import viewsets, mixins, permissions, status
from rest_framework.decorators import action
from rest_framework.response import Response

from orders.exceptions import OrderNotFound, PaymentNotFound
from orders.models import Order
from products.views import StandardResultsSetPagination
from . import services
from .models import Transaction
from .serializers import TransactionSerializer, InitiatePaymentSerializer


class PaymentViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """Payments for the authenticated user's orders (all payments for admins)."""

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = TransactionSerializer
    pagination_class = StandardResultsSetPagination
    lookup_field = 'reference'
    lookup_value_regex = r'[A-Za-z0-9_\-]+'

    def get_queryset(self):
        user = self.request.user
        transactions = Transaction.objects.select_related('order')
        if getattr(user, 'is_platform_admin', False):
            return transactions
        return transactions.filter(order__buyer=user)

    @action(detail=False, methods=['post'])
    def initiate(self, request):
        """Start paying one of the buyer's pending orders."""
        serializer = InitiatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        order_id = data.pop('order_id')

        orders = Order.objects.all()
        if not request.user.is_platform_admin:
            orders = orders.filter(buyer=request.user)
        if not orders.filter(pk=order_id).exists():
            raise OrderNotFound()

        tx = services.initiate_payment(order_id, provider=data.pop('provider', None), **data)
        return Response(TransactionSerializer(tx).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def refresh(self, request, reference=None):
        """Poll the gateway for a payment that is still pending."""
        if not self.get_queryset().filter(reference=reference).exists():
            raise PaymentNotFound()
        tx = services.refresh_payment(reference)
        return Response(TransactionSerializer(tx).data)

    @action(
        detail=False,
        methods=['post'],
        url_path=r'callback/(?P<provider>[a-z_]+)',
        permission_classes=[permissions.AllowAny],
        authentication_classes=[],
    )
    def callback(self, request, provider=None):
        """Public webhook called by the payment providers."""
        tx = services.handle_callback(provider, request.data)
        return Response({'reference': tx.reference, 'status': tx.status})
