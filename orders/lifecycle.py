"""Order lifecycle: creation from a cart snapshot and status transitions.

All writes run inside ``transaction.atomic``. Stock is taken with a single
conditional UPDATE per line and status changes lock the order row, so the
functions here are safe to call from concurrent request handlers.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.crypto import get_random_string
from rest_framework.exceptions import ValidationError

from products.models import Product
from .events import emit_on_commit, order_status_changed
from .exceptions import EmptyCart, InsufficientStock, InvalidTransition, OrderNotFound
from .models import Order, OrderItem, OrderStatus, PaymentMethod

logger = logging.getLogger(__name__)

DELIVERY_CODE_MAX_RETRIES = 5

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current, target) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def ensure_transition(order, target):
    """Raise ``InvalidTransition`` unless ``order`` may move to ``target``."""
    if not can_transition(order.status, target):
        logger.warning(
            "Refused order transition %s -> %s for order %s", order.status, target, order.pk,
        )
        raise InvalidTransition(current=order.status, target=target)


def generate_delivery_code():
    return get_random_string(settings.DELIVERY_CODE_LENGTH, settings.DELIVERY_CODE_ALPHABET)


def _lock_order(order_id):
    order_id = getattr(order_id, 'pk', order_id)
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise OrderNotFound()
    return order


def _insert_order(**fields):
    """Insert an order with a fresh delivery code, retrying on a code collision."""
    for attempt in range(1, DELIVERY_CODE_MAX_RETRIES + 1):
        try:
            with transaction.atomic():
                return Order.objects.create(delivery_code=generate_delivery_code(), **fields)
        except IntegrityError:
            logger.warning("Delivery code collision (attempt %s/%s)", attempt, DELIVERY_CODE_MAX_RETRIES)
    raise IntegrityError('Could not generate a unique delivery code.')


def create_order(buyer, cart_lines, payment_method, shipping_address):
    """Create a ``pending`` order from ``cart_lines`` (iterable of ``CartLine``).

    Every line must reference a published product of the same shop. Stock is
    decremented line by line with a conditional update; if any line cannot be
    served, ``InsufficientStock`` is raised and every earlier decrement is
    rolled back with the transaction.
    """
    lines = list(cart_lines or ())
    if not lines:
        raise EmptyCart()
    if payment_method not in PaymentMethod.values:
        raise ValidationError({'payment_method': f'Unsupported payment method: {payment_method}.'})
    if not (shipping_address or '').strip():
        raise ValidationError({'shipping_address': 'Shipping address is required.'})
    for line in lines:
        if line.quantity < 1:
            raise ValidationError({'quantity': 'Quantity must be at least 1.'})

    with transaction.atomic():
        products = Product.objects.select_related('shop').in_bulk([line.product_id for line in lines])
        for line in lines:
            product = products.get(line.product_id)
            if product is None or not product.is_published or not product.shop.is_active:
                raise ValidationError({'items': 'One or more items are not available.'})

        shop_ids = {product.shop_id for product in products.values()}
        if len(shop_ids) != 1:
            raise ValidationError({'items': 'An order can only contain products from one shop.'})

        # Lock products in id order to keep concurrent multi-line checkouts deadlock free.
        for line in sorted(lines, key=lambda l: l.product_id):
            if not Product.objects.decrement_stock(line.product_id, line.quantity):
                available = Product.objects.filter(pk=line.product_id).values_list('stock', flat=True).first()
                product = products[line.product_id]
                logger.info(
                    "Insufficient stock for product %s: requested %s, available %s",
                    product.pk, line.quantity, available,
                )
                raise InsufficientStock(product=product, available=available, requested=line.quantity)

        total = sum((products[line.product_id].price * line.quantity for line in lines), Decimal('0.00'))

        order = _insert_order(
            buyer=buyer,
            shop_id=shop_ids.pop(),
            total_amount=total,
            payment_method=payment_method,
            shipping_address=shipping_address.strip(),
        )
        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=products[line.product_id].price,
            )
            for line in lines
        ])

        logger.info("Order %s created for buyer %s (total %s)", order.pk, buyer.pk, total)
        emit_on_commit(
            order_status_changed, Order,
            order=order, previous=None, current=order.status, actor=buyer,
        )
    return order


def checkout_cart(buyer, payment_method, shipping_address, cart_id=None):
    """Turn the buyer's cart into one order per shop and empty the cart.

    Either every order is created or none is; the cart is only cleared when
    all of them succeed.
    """
    from cart.models import ShoppingCart

    with transaction.atomic():
        carts = ShoppingCart.objects.select_for_update().filter(user=buyer)
        if cart_id is not None:
            carts = carts.filter(pk=cart_id)
        cart = carts.first()
        if cart is None:
            if cart_id is not None:
                raise ValidationError({'cart_id': 'Invalid cart.'})
            raise EmptyCart()

        lines = cart.snapshot()
        if not lines:
            raise EmptyCart()

        shop_by_product = dict(
            Product.objects.filter(pk__in=[line.product_id for line in lines]).values_list('id', 'shop_id')
        )
        groups = {}
        for line in lines:
            groups.setdefault(shop_by_product.get(line.product_id), []).append(line)

        orders = [
            create_order(buyer, group, payment_method, shipping_address)
            for group in groups.values()
        ]
        cart.items.all().delete()
    return orders


def _apply_status(order, target, actor=None, **fields):
    previous = order.status
    order.status = target
    for name, value in fields.items():
        setattr(order, name, value)
    order.save(update_fields=['status', 'updated_at', *fields])
    logger.info("Order %s: %s -> %s", order.pk, previous, target)
    emit_on_commit(
        order_status_changed, Order,
        order=order, previous=previous, current=target, actor=actor,
    )
    return order


def mark_paid(order_id, payment_reference, actor=None):
    """Move a ``pending`` order to ``paid``.

    Repeating the call with the reference the order was paid with returns the
    order unchanged.
    """
    if not payment_reference:
        raise ValidationError({'payment_reference': 'Payment reference is required.'})

    with transaction.atomic():
        order = _lock_order(order_id)
        if order.payment_reference == payment_reference and order.status in (
            OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED,
        ):
            logger.info("Order %s already paid with reference %s", order.pk, payment_reference)
            return order

        ensure_transition(order, OrderStatus.PAID)
        return _apply_status(
            order, OrderStatus.PAID, actor,
            payment_reference=payment_reference, paid_at=timezone.now(),
        )


def mark_shipped(order_id, actor=None):
    with transaction.atomic():
        order = _lock_order(order_id)
        ensure_transition(order, OrderStatus.SHIPPED)
        return _apply_status(order, OrderStatus.SHIPPED, actor, shipped_at=timezone.now())


def mark_delivered(order_id, actor=None):
    """Finish the order. Calling it on a delivered order is a no-op."""
    with transaction.atomic():
        order = _lock_order(order_id)
        if order.status == OrderStatus.DELIVERED:
            return order
        ensure_transition(order, OrderStatus.DELIVERED)
        return _apply_status(
            order, OrderStatus.DELIVERED, actor,
            is_delivered=True, delivered_at=timezone.now(),
        )


def cancel_order(order_id, actor=None):
    """Cancel a ``pending`` or ``paid`` order and put its stock back.

    Refused while a delivery for the order is still in progress.
    """
    from deliveries.models import Delivery

    with transaction.atomic():
        order = _lock_order(order_id)
        ensure_transition(order, OrderStatus.CANCELLED)

        if Delivery.objects.active().filter(order=order).exists():
            logger.warning("Refused to cancel order %s: delivery in progress", order.pk)
            raise InvalidTransition(current=order.status, target=OrderStatus.CANCELLED)

        items = list(order.items.filter(is_cancelled=False).order_by('product_id'))
        for item in items:
            Product.objects.restock(item.product_id, item.quantity)
        order.items.filter(is_cancelled=False).update(is_cancelled=True)

        return _apply_status(
            order, OrderStatus.CANCELLED, actor,
            cancelled_at=timezone.now(), cancelled_by=actor,
        )
