"""Domain errors for orders, deliveries and payments.

Each error is a DRF ``APIException`` so views can let it propagate; the
project exception handler renders it as ``{"detail": ..., "code": ...}``.
"""

from rest_framework import status
from rest_framework.exceptions import APIException


class EmptyCart(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Cart is empty.'
    default_code = 'empty_cart'


class InsufficientStock(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Not enough stock for one or more items.'
    default_code = 'insufficient_stock'

    def __init__(self, product=None, available=None, requested=None):
        self.product_id = getattr(product, 'id', None)
        self.available = available
        self.requested = requested
        detail = None
        if product is not None:
            detail = f'Insufficient stock for {product.name}. Available: {available}.'
        super().__init__(detail=detail)


class OrderNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Order not found.'
    default_code = 'order_not_found'


class DeliveryNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Delivery not found.'
    default_code = 'delivery_not_found'


class PaymentNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Payment not found.'
    default_code = 'payment_not_found'


class InvalidTransition(APIException):
    """A state change the lifecycle does not allow.

    The user only sees a generic message; the states involved are kept on
    the exception for logging.
    """

    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This action is no longer possible.'
    default_code = 'invalid_transition'

    def __init__(self, current=None, target=None, detail=None):
        self.current = current
        self.target = target
        super().__init__(detail=detail)


class AlreadyAssigned(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This order already has an active delivery.'
    default_code = 'already_assigned'


class OrderNotPaid(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Only paid orders can be assigned for delivery.'
    default_code = 'order_not_paid'


class InvalidDeliveryCode(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Invalid or already used delivery code.'
    default_code = 'invalid_delivery_code'


class PaymentInitiationFailed(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Payment could not be started. Please try again.'
    default_code = 'payment_initiation_failed'


class PaymentGatewayUnavailable(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'The payment provider could not be reached. Please try again.'
    default_code = 'payment_gateway_unavailable'


class TrackingNotActive(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Positions can only be reported while the parcel is on the road.'
    default_code = 'tracking_not_active'
