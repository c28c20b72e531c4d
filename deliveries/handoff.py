"""Delivery assignment and the hand-off state machine.

A delivery moves ``assigned -> picked_up -> in_transit -> delivered`` and can
fail from any of the first three states. Entering ``delivered`` consumes the
order's confirmation code and completes the order in the same transaction.
While the parcel is on the road the agent reports GPS positions.
"""

import logging
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from orders import lifecycle
from orders.events import delivery_status_changed, emit_on_commit
from orders.exceptions import (
    AlreadyAssigned,
    DeliveryNotFound,
    InvalidDeliveryCode,
    InvalidTransition,
    OrderNotFound,
    OrderNotPaid,
    TrackingNotActive,
)
from orders.models import Order, OrderStatus
from .models import ACTIVE_STATUSES, TRACKABLE_STATUSES, Delivery, DeliveryPosition, DeliveryStatus

logger = logging.getLogger(__name__)

DELIVERY_TRANSITIONS = {
    DeliveryStatus.ASSIGNED: frozenset({DeliveryStatus.PICKED_UP, DeliveryStatus.FAILED}),
    DeliveryStatus.PICKED_UP: frozenset({DeliveryStatus.IN_TRANSIT, DeliveryStatus.FAILED}),
    DeliveryStatus.IN_TRANSIT: frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}),
    DeliveryStatus.DELIVERED: frozenset(),
    DeliveryStatus.FAILED: frozenset(),
}

_TIMESTAMP_FIELDS = {
    DeliveryStatus.PICKED_UP: 'picked_up_at',
    DeliveryStatus.IN_TRANSIT: 'in_transit_at',
    DeliveryStatus.DELIVERED: 'delivered_at',
    DeliveryStatus.FAILED: 'failed_at',
}


def ensure_transition(delivery, target):
    if target not in DELIVERY_TRANSITIONS.get(delivery.status, frozenset()):
        logger.warning(
            "Refused delivery transition %s -> %s for delivery %s", delivery.status, target, delivery.pk,
        )
        raise InvalidTransition(current=delivery.status, target=target)


def assign_delivery(order_id, agent, assigned_by=None):
    """Create an ``assigned`` delivery for a paid, undelivered order.

    The one-active-delivery-per-order rule is a partial unique constraint;
    losing that race surfaces as ``AlreadyAssigned``.
    """
    if agent is None or not agent.is_active or not agent.is_delivery_agent:
        raise ValidationError({'agent_id': 'User is not an active delivery agent.'})

    order_id = getattr(order_id, 'pk', order_id)
    with transaction.atomic():
        order = Order.objects.select_for_update().filter(pk=order_id).first()
        if order is None:
            raise OrderNotFound()
        if order.status != OrderStatus.PAID or order.is_delivered:
            logger.warning("Refused to assign order %s in status %s", order.pk, order.status)
            raise OrderNotPaid()

        try:
            with transaction.atomic():
                delivery = Delivery.objects.create(order=order, agent=agent, assigned_by=assigned_by)
        except IntegrityError:
            logger.warning("Order %s already has an active delivery", order.pk)
            raise AlreadyAssigned()

        logger.info("Order %s assigned to agent %s (delivery %s)", order.pk, agent.pk, delivery.pk)
        emit_on_commit(
            delivery_status_changed, Delivery,
            delivery=delivery, previous=None, current=delivery.status, actor=assigned_by,
        )
    return delivery


def _consume_code(order_id, code):
    """Mark the order's code used. Only one caller can ever succeed."""
    code = (code or '').strip().lower()
    if not code:
        return False
    consumed = Order.objects.filter(
        pk=order_id,
        delivery_code=code,
        delivery_code_consumed_at__isnull=True,
    ).update(delivery_code_consumed_at=timezone.now())
    return consumed == 1


def update_delivery_status(delivery_id, new_status, code=None, notes=None, agent=None):
    """Advance a delivery. ``delivered`` needs the order's unused code.

    When ``agent`` is given, only that agent's deliveries are visible.
    """
    if new_status not in DeliveryStatus.values:
        raise ValidationError({'status': f'Unknown delivery status: {new_status}.'})
    new_status = DeliveryStatus(new_status)

    with transaction.atomic():
        deliveries = Delivery.objects.select_for_update().filter(pk=delivery_id)
        if agent is not None:
            deliveries = deliveries.filter(agent=agent)
        delivery = deliveries.first()
        if delivery is None:
            raise DeliveryNotFound()

        if new_status == DeliveryStatus.DELIVERED and not _consume_code(delivery.order_id, code):
            logger.warning("Invalid delivery code for delivery %s", delivery.pk)
            raise InvalidDeliveryCode()

        ensure_transition(delivery, new_status)

        previous = delivery.status
        delivery.status = new_status
        setattr(delivery, _TIMESTAMP_FIELDS[new_status], timezone.now())
        update_fields = ['status', _TIMESTAMP_FIELDS[new_status], 'updated_at']
        if notes is not None:
            delivery.notes = notes
            update_fields.append('notes')
        delivery.save(update_fields=update_fields)

        if new_status == DeliveryStatus.DELIVERED:
            delivery.order = lifecycle.mark_delivered(delivery.order_id, actor=agent)

        logger.info("Delivery %s: %s -> %s", delivery.pk, previous, new_status)
        emit_on_commit(
            delivery_status_changed, Delivery,
            delivery=delivery, previous=previous, current=new_status, actor=agent,
        )
    return delivery


def get_assigned_deliveries(agent):
    """Active deliveries of ``agent``, oldest assignment first."""
    return (
        Delivery.objects.active()
        .filter(agent=agent)
        .select_related('order', 'order__buyer', 'order__shop')
        .order_by('assigned_at', 'id')
    )


def get_delivery_stats():
    counts = dict(
        Delivery.objects.order_by().values_list('status').annotate(n=Count('id'))
    )
    by_status = {value: counts.get(value, 0) for value in DeliveryStatus.values}
    User = get_user_model()
    return {
        'total': sum(by_status.values()),
        'active': sum(by_status[value] for value in ACTIVE_STATUSES),
        'by_status': by_status,
        'agents': User.objects.filter(user_type=User.DELIVERY, is_active=True).count(),
    }


def available_agents():
    """Active delivery agents with their current workload, least busy first."""
    User = get_user_model()
    return (
        User.objects.filter(user_type=User.DELIVERY, is_active=True)
        .annotate(active_deliveries=Count('deliveries', filter=Q(deliveries__status__in=ACTIVE_STATUSES)))
        .order_by('active_deliveries', 'id')
    )


def _coordinate(value):
    return Decimal(str(round(float(value), 6)))


def record_position(delivery_id, agent, latitude, longitude, accuracy=None, speed=None, heading=None):
    """Store a GPS fix from the agent carrying the delivery.

    Fixes are accepted only between pick-up and completion.
    """
    if not -90 <= float(latitude) <= 90:
        raise ValidationError({'latitude': 'Latitude must be between -90 and 90.'})
    if not -180 <= float(longitude) <= 180:
        raise ValidationError({'longitude': 'Longitude must be between -180 and 180.'})

    delivery = Delivery.objects.filter(pk=delivery_id, agent=agent).first()
    if delivery is None:
        raise DeliveryNotFound()
    if delivery.status not in TRACKABLE_STATUSES:
        logger.warning("Position for delivery %s refused in status %s", delivery.pk, delivery.status)
        raise TrackingNotActive()

    position = DeliveryPosition.objects.create(
        delivery=delivery,
        latitude=_coordinate(latitude),
        longitude=_coordinate(longitude),
        accuracy=accuracy,
        speed=speed,
        heading=heading,
    )
    logger.info("Delivery %s at %s, %s", delivery.pk, position.latitude, position.longitude)
    return position


def get_positions(delivery_id, limit=50):
    """The latest ``limit`` fixes of a delivery, oldest first."""
    latest = DeliveryPosition.objects.filter(delivery_id=delivery_id).order_by('-recorded_at', '-id')[:limit]
    return list(reversed(latest))


def last_position(delivery_id):
    return DeliveryPosition.objects.filter(delivery_id=delivery_id).order_by('-recorded_at', '-id').first()
