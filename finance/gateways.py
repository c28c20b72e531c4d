"""Payment gateway adapters.

Every rail exposes the same two calls:

- ``initiate(order, **details)`` starts a payment and returns an
  :class:`InitiationResult` carrying the gateway reference (and a redirect
  URL for rails that need one).
- ``confirm(reference)`` asks the gateway where that payment stands and
  returns one of ``PaymentStatus`` values.

Adapters never touch the database; ``finance.services`` owns persistence.
"""

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal

import requests
from django.conf import settings
from django.utils.module_loading import import_string

from .models import PaymentProvider, PaymentStatus

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """The gateway could not be reached or refused the request."""


@dataclass(frozen=True)
class InitiationResult:
    reference: str
    redirect_url: str = ''
    status: str = PaymentStatus.PENDING
    raw: dict = field(default_factory=dict)


def _dig(payload, *keys):
    """``payload[k1][k2]...`` or None as soon as a level is not a mapping."""
    value = payload
    for key in keys:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def get_gateway(provider):
    try:
        path = settings.PAYMENT_GATEWAYS[provider]
    except KeyError:
        raise GatewayError(f'No gateway configured for provider {provider!r}.')
    return import_string(path)()


class PaymentGateway:
    provider = None
    # Gateway status (lower-cased) -> PaymentStatus
    status_map = {}

    def initiate(self, order, **details):
        raise NotImplementedError

    def confirm(self, reference):
        raise NotImplementedError

    def callback_reference(self, payload):
        """Extract the payment reference from a callback body."""
        return _dig(payload, 'reference')

    def normalize_status(self, raw_status):
        return self.status_map.get(str(raw_status or '').strip().lower(), PaymentStatus.PENDING)

    def _request(self, method, url, **kwargs):
        kwargs.setdefault('timeout', settings.PAYMENT_GATEWAY_TIMEOUT)
        try:
            response = requests.request(method, url, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            body = getattr(getattr(exc, 'response', None), 'text', '')
            logger.error("%s %s %s failed: %s %s", self.provider, method, url, exc, body[:500])
            raise GatewayError(str(exc)) from exc
        return response

    def _json(self, response, *keys):
        """Decode a JSON object body and walk ``keys`` into it.

        A body that is not a JSON object, or lacks one of ``keys``, is a
        gateway failure like any other.
        """
        try:
            value = response.json()
            if not isinstance(value, Mapping):
                raise TypeError(f'expected a JSON object, got {type(value).__name__}')
            for key in keys:
                value = value[key]
        except (ValueError, KeyError, TypeError, IndexError) as exc:
            logger.error("%s returned an unexpected body: %r", self.provider, exc)
            raise GatewayError(f'Unexpected response from {self.provider}.') from exc
        return value

    @staticmethod
    def _msisdn(order, details):
        phone = details.get('phone_number') or getattr(order.buyer, 'phone_number', None)
        if not phone:
            raise GatewayError('A phone number is required for mobile money payments.')
        return str(phone).replace(' ', '').lstrip('+')


class CashOnDeliveryGateway(PaymentGateway):
    """Cash collected by the agent; confirmed as soon as it is chosen."""

    provider = PaymentProvider.CASH

    def initiate(self, order, **details):
        reference = f'COD-{order.pk}-{uuid.uuid4().hex[:10]}'
        return InitiationResult(reference=reference, status=PaymentStatus.SUCCEEDED)

    def confirm(self, reference):
        return PaymentStatus.SUCCEEDED


class MtnMomoGateway(PaymentGateway):
    """MTN MoMo collection API (request to pay)."""

    provider = PaymentProvider.MTN_MOMO
    status_map = {
        'successful': PaymentStatus.SUCCEEDED,
        'success': PaymentStatus.SUCCEEDED,
        'failed': PaymentStatus.FAILED,
        'rejected': PaymentStatus.FAILED,
        'timeout': PaymentStatus.FAILED,
        'pending': PaymentStatus.PENDING,
    }

    def __init__(self, config=None):
        self.config = config or settings.MTN_MOMO

    def _token(self):
        response = self._request(
            'POST',
            f"{self.config['BASE_URL']}/collection/token/",
            auth=(self.config['API_USER'], self.config['API_KEY']),
            headers={'Ocp-Apim-Subscription-Key': self.config['SUBSCRIPTION_KEY']},
        )
        return self._json(response, 'access_token')

    def _headers(self, token):
        return {
            'Authorization': f'Bearer {token}',
            'X-Target-Environment': self.config['TARGET_ENVIRONMENT'],
            'Ocp-Apim-Subscription-Key': self.config['SUBSCRIPTION_KEY'],
        }

    def initiate(self, order, **details):
        msisdn = self._msisdn(order, details)
        reference = str(uuid.uuid4())
        payload = {
            'amount': str(order.total_amount.quantize(Decimal('1'))),
            'currency': self.config['CURRENCY'],
            'externalId': str(order.pk),
            'payer': {'partyIdType': 'MSISDN', 'partyId': msisdn},
            'payerMessage': f'Payment for order #{order.pk}',
            'payeeNote': f'Order #{order.pk}',
        }
        headers = self._headers(self._token())
        headers['X-Reference-Id'] = reference
        if self.config.get('CALLBACK_URL'):
            headers['X-Callback-Url'] = self.config['CALLBACK_URL']

        self._request(
            'POST',
            f"{self.config['BASE_URL']}/collection/v1_0/requesttopay",
            json=payload,
            headers=headers,
        )
        logger.info("MTN MoMo request to pay %s sent for order %s", reference, order.pk)
        return InitiationResult(reference=reference, raw={'request': payload})

    def confirm(self, reference):
        response = self._request(
            'GET',
            f"{self.config['BASE_URL']}/collection/v1_0/requesttopay/{reference}",
            headers=self._headers(self._token()),
        )
        return self.normalize_status(self._json(response).get('status'))

    def callback_reference(self, payload):
        return _dig(payload, 'referenceId') or _dig(payload, 'reference')


class AirtelMoneyGateway(PaymentGateway):
    """Airtel Money merchant payments API."""

    provider = PaymentProvider.AIRTEL_MONEY
    status_map = {
        'ts': PaymentStatus.SUCCEEDED,
        'success': PaymentStatus.SUCCEEDED,
        'successful': PaymentStatus.SUCCEEDED,
        'completed': PaymentStatus.SUCCEEDED,
        'tf': PaymentStatus.FAILED,
        'failed': PaymentStatus.FAILED,
        'tip': PaymentStatus.PENDING,
        'ta': PaymentStatus.PENDING,
    }

    def __init__(self, config=None):
        self.config = config or settings.AIRTEL_MONEY

    def _token(self):
        response = self._request(
            'POST',
            f"{self.config['BASE_URL']}/auth/oauth2/token",
            json={
                'client_id': self.config['CLIENT_ID'],
                'client_secret': self.config['CLIENT_SECRET'],
                'grant_type': 'client_credentials',
            },
        )
        return self._json(response, 'access_token')

    def _headers(self, token):
        return {
            'Authorization': f'Bearer {token}',
            'Accept': 'application/json',
            'X-Country': self.config['COUNTRY'],
            'X-Currency': self.config['CURRENCY'],
        }

    def initiate(self, order, **details):
        msisdn = self._msisdn(order, details)
        reference = f'TXN{order.pk}{uuid.uuid4().hex[:12].upper()}'
        payload = {
            'reference': f'Order {order.pk}',
            'subscriber': {
                'country': self.config['COUNTRY'],
                'currency': self.config['CURRENCY'],
                'msisdn': msisdn,
            },
            'transaction': {
                'amount': str(order.total_amount),
                'country': self.config['COUNTRY'],
                'currency': self.config['CURRENCY'],
                'id': reference,
            },
        }
        response = self._request(
            'POST',
            f"{self.config['BASE_URL']}/merchant/v1/payments/",
            json=payload,
            headers=self._headers(self._token()),
        )
        logger.info("Airtel Money payment %s sent for order %s", reference, order.pk)
        return InitiationResult(reference=reference, raw=self._json(response))

    def confirm(self, reference):
        response = self._request(
            'GET',
            f"{self.config['BASE_URL']}/merchant/v1/payments/{reference}",
            headers=self._headers(self._token()),
        )
        return self.normalize_status(_dig(self._json(response), 'data', 'transaction', 'status'))

    def callback_reference(self, payload):
        return _dig(payload, 'transaction', 'id') or _dig(payload, 'reference')


class CardGateway(PaymentGateway):
    """Card payments through a payment-intents API (Stripe compatible)."""

    provider = PaymentProvider.CARD
    status_map = {
        'succeeded': PaymentStatus.SUCCEEDED,
        'canceled': PaymentStatus.FAILED,
    }
    zero_decimal_currencies = {'bif', 'clp', 'djf', 'gnf', 'jpy', 'kmf', 'krw', 'mga', 'pyg', 'rwf', 'ugx', 'vnd', 'vuv', 'xaf', 'xof', 'xpf'}

    def __init__(self, config=None):
        self.config = config or settings.CARD_GATEWAY

    def _amount(self, amount):
        if self.config['CURRENCY'].lower() in self.zero_decimal_currencies:
            return int(amount.quantize(Decimal('1')))
        return int((amount * 100).quantize(Decimal('1')))

    def initiate(self, order, **details):
        data = {
            'amount': self._amount(order.total_amount),
            'currency': self.config['CURRENCY'],
            'metadata[order_id]': order.pk,
        }
        if details.get('payment_method_token'):
            data['payment_method'] = details['payment_method_token']
            data['confirm'] = 'true'
            if details.get('return_url'):
                data['return_url'] = details['return_url']

        response = self._request(
            'POST',
            f"{self.config['BASE_URL']}/v1/payment_intents",
            data=data,
            auth=(self.config['SECRET_KEY'], ''),
        )
        intent = self._json(response)
        redirect = _dig(intent, 'next_action', 'redirect_to_url', 'url') or ''
        return InitiationResult(
            reference=self._json(response, 'id'),
            redirect_url=redirect,
            status=self.normalize_status(intent.get('status')),
            raw=intent,
        )

    def confirm(self, reference):
        response = self._request(
            'GET',
            f"{self.config['BASE_URL']}/v1/payment_intents/{reference}",
            auth=(self.config['SECRET_KEY'], ''),
        )
        return self.normalize_status(self._json(response).get('status'))

    def callback_reference(self, payload):
        return _dig(payload, 'data', 'object', 'id') or _dig(payload, 'reference')
