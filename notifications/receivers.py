"""Fan order and delivery events out to the people involved.

Receivers run after commit through ``send_robust``; an exception here is
logged by the dispatcher and the state change that triggered it stands.
"""

import logging

from django.dispatch import receiver

from orders.events import order_status_changed, delivery_status_changed
from .models import Notification

logger = logging.getLogger(__name__)

ORDER_MESSAGES = {
    'pending': 'New order #{order} was placed with {shop}.',
    'paid': 'Payment for order #{order} was confirmed.',
    'shipped': 'Order #{order} has been shipped.',
    'delivered': 'Order #{order} was delivered.',
    'cancelled': 'Order #{order} was cancelled.',
}

DELIVERY_MESSAGES = {
    'assigned': 'Order #{order} has been assigned for delivery.',
    'picked_up': 'Order #{order} was picked up by the delivery agent.',
    'in_transit': 'Order #{order} is on its way.',
    'delivered': 'Order #{order} was handed over to the buyer.',
    'failed': 'Delivery of order #{order} failed.',
}


def _notify(recipients, kind, message, payload, actor=None):
    seen = set()
    rows = []
    for user in recipients:
        if user is None or user.pk in seen:
            continue
        # Nobody needs to be told about their own action.
        if actor is not None and user.pk == actor.pk:
            continue
        seen.add(user.pk)
        rows.append(Notification(recipient=user, kind=kind, message=message, payload=payload))
    Notification.objects.bulk_create(rows)
    logger.debug("%s: %s notification(s) created", kind, len(rows))
    return rows


@receiver(order_status_changed, dispatch_uid='notifications.order_status_changed')
def on_order_status_changed(sender, order, previous, current, actor=None, **kwargs):
    message = ORDER_MESSAGES[current].format(order=order.pk, shop=order.shop.name)
    payload = {'order_id': order.pk, 'previous': previous, 'status': current}

    if previous is None:
        recipients = [order.shop.seller]
    elif current == 'shipped':
        recipients = [order.buyer]
    else:
        recipients = [order.buyer, order.shop.seller]
    _notify(recipients, f'order.{current}', message, payload, actor=actor)


@receiver(delivery_status_changed, dispatch_uid='notifications.delivery_status_changed')
def on_delivery_status_changed(sender, delivery, previous, current, actor=None, **kwargs):
    order = delivery.order
    message = DELIVERY_MESSAGES[current].format(order=order.pk)
    payload = {'order_id': order.pk, 'delivery_id': delivery.pk, 'previous': previous, 'status': current}
    kind = f'delivery.{current}'

    if current == 'assigned':
        _notify(
            [delivery.agent], kind,
            f'You have a new delivery: order #{order.pk} from {order.shop.name}.',
            payload, actor=actor,
        )
        # The buyer gets the code they must hand to the agent.
        _notify(
            [order.buyer], kind,
            f'{message} Give code {order.delivery_code} to the agent on delivery.',
            payload, actor=actor,
        )
        return

    _notify([order.buyer, order.shop.seller], kind, message, payload, actor=actor)
