"""Delivery API views.

Admins assign paid orders to agents and watch the fleet; agents work their
queue and report progress; buyers follow their parcel on the map. State
changes go through ``deliveries.handoff``.
"""

from django.contrib.auth import get_user_model
from django.http import Http404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, mixins, permissions, status
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response

from accounts.permissions import IsDeliveryAgent, IsDeliveryAgentOrAdmin, IsPlatformAdmin
from orders.exceptions import DeliveryNotFound
from products.views import StandardResultsSetPagination
from . import handoff
from .models import Delivery
from .serializers import (
    AgentSerializer,
    AssignDeliverySerializer,
    DeliverySerializer,
    DeliveryPositionSerializer,
    DeliveryStatusUpdateSerializer,
    RecordPositionSerializer,
)


class DeliveryViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    serializer_class = DeliverySerializer
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['status', 'agent']
    lookup_value_regex = r'\d+'
    tracking_actions = ('positions', 'last_position')

    def get_permissions(self):
        if self.action in ('create', 'stats', 'agents'):
            return [IsPlatformAdmin()]
        if self.action == 'assigned':
            return [IsDeliveryAgent()]
        if self.action in self.tracking_actions:
            if self.request.method == 'POST':
                return [IsDeliveryAgent()]
            return [permissions.IsAuthenticated()]
        return [IsDeliveryAgentOrAdmin()]

    def get_queryset(self):
        user = self.request.user
        deliveries = Delivery.objects.select_related('order', 'order__buyer', 'order__shop', 'agent')
        if getattr(user, 'is_platform_admin', False):
            return deliveries
        # buyers follow the parcels of their own orders
        if self.action in self.tracking_actions and getattr(user, 'is_buyer', False):
            return deliveries.filter(order__buyer=user)
        return deliveries.filter(agent=user)

    def get_object(self):
        try:
            return super().get_object()
        except Http404:
            raise DeliveryNotFound()

    def create(self, request, *args, **kwargs):
        """Assign a paid order to a delivery agent."""
        serializer = AssignDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        agent = get_user_model().objects.filter(pk=serializer.validated_data['agent_id']).first()
        if agent is None:
            raise ValidationError({'agent_id': 'Unknown user.'})

        delivery = handoff.assign_delivery(
            serializer.validated_data['order_id'], agent, assigned_by=request.user,
        )
        return Response(self.get_serializer(delivery).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['put', 'patch'], url_path='status')
    def update_status(self, request, pk=None):
        """Report progress; ``delivered`` requires the buyer's code."""
        serializer = DeliveryStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user = request.user
        agent = None if user.is_platform_admin else user
        delivery = handoff.update_delivery_status(
            pk,
            data['status'],
            code=data.get('code'),
            notes=data.get('notes'),
            agent=agent,
        )
        return Response(self.get_serializer(delivery).data)

    @action(detail=False, methods=['get'])
    def assigned(self, request):
        """The agent's active deliveries, oldest first."""
        deliveries = handoff.get_assigned_deliveries(request.user)
        return Response(self.get_serializer(deliveries, many=True).data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response(handoff.get_delivery_stats())

    @action(detail=False, methods=['get'])
    def agents(self, request):
        """Delivery agents with their current workload."""
        return Response(AgentSerializer(handoff.available_agents(), many=True).data)

    @action(detail=True, methods=['get', 'post'])
    def positions(self, request, pk=None):
        """GET the route so far; POST a fix from the carrying agent."""
        delivery = self.get_object()
        if request.method == 'POST':
            serializer = RecordPositionSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            position = handoff.record_position(delivery.pk, request.user, **serializer.validated_data)
            return Response(DeliveryPositionSerializer(position).data, status=status.HTTP_201_CREATED)

        try:
            limit = min(int(request.query_params.get('limit', 50)), 500)
        except ValueError:
            raise ValidationError({'limit': 'Must be an integer.'})
        if limit < 1:
            raise ValidationError({'limit': 'Must be at least 1.'})
        return Response(DeliveryPositionSerializer(handoff.get_positions(delivery.pk, limit), many=True).data)

    @action(detail=True, methods=['get'], url_path='last-position')
    def last_position(self, request, pk=None):
        delivery = self.get_object()
        position = handoff.last_position(delivery.pk)
        if position is None:
            raise NotFound('No position reported yet.')
        return Response(DeliveryPositionSerializer(position).data)
