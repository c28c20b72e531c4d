"""Payment orchestration between orders and the gateway adapters.

Gateway confirmations are treated as at-least-once input: the transaction
row is locked, and once it has reached a final status further confirmations
for the same reference are ignored.
"""

import logging
from collections.abc import Mapping

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from orders import lifecycle
from orders.exceptions import (
    InvalidTransition,
    OrderNotFound,
    PaymentGatewayUnavailable,
    PaymentInitiationFailed,
    PaymentNotFound,
)
from orders.models import Order, OrderStatus, PaymentMethod
from .gateways import GatewayError, get_gateway
from .models import PaymentProvider, PaymentStatus, Transaction

logger = logging.getLogger(__name__)

PROVIDERS_BY_METHOD = {
    PaymentMethod.CASH_ON_DELIVERY: {PaymentProvider.CASH},
    PaymentMethod.MOBILE_MONEY: {PaymentProvider.MTN_MOMO, PaymentProvider.AIRTEL_MONEY},
    PaymentMethod.CARD: {PaymentProvider.CARD},
}


def resolve_provider(order, provider=None):
    provider = provider or settings.DEFAULT_PAYMENT_PROVIDERS.get(order.payment_method)
    if provider not in PROVIDERS_BY_METHOD.get(order.payment_method, set()):
        raise ValidationError({'provider': f'{provider} cannot be used for {order.payment_method} orders.'})
    return provider


def initiate_payment(order_id, provider=None, **details):
    """Start a payment for a ``pending`` order.

    The gateway call happens outside any database transaction. If it fails
    no transaction row is written and the order stays ``pending``.
    """
    order_id = getattr(order_id, 'pk', order_id)
    order = Order.objects.select_related('buyer').filter(pk=order_id).first()
    if order is None:
        raise OrderNotFound()
    if order.status != OrderStatus.PENDING:
        logger.warning("Refused payment initiation for order %s in status %s", order.pk, order.status)
        raise InvalidTransition(current=order.status, target=OrderStatus.PAID)

    provider = resolve_provider(order, provider)
    try:
        result = get_gateway(provider).initiate(order, **details)
    except GatewayError as exc:
        logger.error("Payment initiation failed for order %s via %s: %s", order.pk, provider, exc)
        raise PaymentInitiationFailed()

    tx = Transaction.objects.create(
        order=order,
        provider=provider,
        reference=result.reference,
        amount=order.total_amount,
        redirect_url=result.redirect_url,
        raw_response=result.raw,
    )
    logger.info("Payment %s initiated for order %s via %s", tx.reference, order.pk, provider)

    if result.status != PaymentStatus.PENDING:
        tx = apply_confirmation(tx.reference, result.status)
    return tx


def apply_confirmation(reference, status, payload=None):
    """Record the outcome reported for ``reference``.

    ``succeeded`` marks the order paid; ``failed`` only closes the attempt and
    leaves the order ``pending`` so the buyer can retry.
    """
    if status not in PaymentStatus.values:
        raise ValidationError({'status': f'Unknown payment status: {status}.'})

    with transaction.atomic():
        tx = Transaction.objects.select_for_update().filter(reference=reference).first()
        if tx is None:
            raise PaymentNotFound()
        if tx.is_terminal:
            logger.info("Ignoring repeated confirmation for %s (already %s)", reference, tx.status)
            return tx
        if status == PaymentStatus.PENDING:
            return tx

        tx.status = status
        tx.confirmed_at = timezone.now()
        if payload:
            tx.raw_response = payload
        if status == PaymentStatus.FAILED:
            tx.failure_reason = 'Declined by the payment provider.'
        tx.save(update_fields=['status', 'confirmed_at', 'raw_response', 'failure_reason'])

        if status == PaymentStatus.SUCCEEDED:
            try:
                lifecycle.mark_paid(tx.order_id, tx.reference)
            except InvalidTransition:
                # Money was taken for an order that can no longer be paid.
                logger.error(
                    "Payment %s succeeded but order %s is not payable; refund required", reference, tx.order_id,
                )
                tx.failure_reason = 'Order no longer payable; refund required.'
                tx.save(update_fields=['failure_reason'])
        logger.info("Payment %s is now %s", reference, status)
    return tx


def refresh_payment(reference, provider=None):
    """Ask the gateway for the current status of ``reference`` and apply it."""
    transactions = Transaction.objects.filter(reference=reference)
    if provider is not None:
        transactions = transactions.filter(provider=provider)
    tx = transactions.first()
    if tx is None:
        raise PaymentNotFound()
    if tx.is_terminal:
        return tx

    try:
        status = get_gateway(tx.provider).confirm(reference)
    except GatewayError as exc:
        logger.error("Could not poll payment %s: %s", reference, exc)
        raise PaymentGatewayUnavailable()
    return apply_confirmation(reference, status)


def handle_callback(provider, payload):
    """Gateway webhook entry point.

    The callback body only tells us which payment changed; the status is
    read back from the gateway so a forged body cannot mark an order paid.
    """
    if provider not in PaymentProvider.values:
        raise PaymentNotFound()
    try:
        gateway = get_gateway(provider)
    except GatewayError:
        raise PaymentNotFound()

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError({'detail': 'Callback body must be a JSON object.'})

    reference = gateway.callback_reference(payload)
    if not reference or not isinstance(reference, str):
        raise ValidationError({'reference': 'Missing payment reference.'})
    logger.info("Callback from %s for payment %s", provider, reference)
    return refresh_payment(reference, provider=provider)
