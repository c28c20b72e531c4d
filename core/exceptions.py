"""Project-wide DRF exception handler.

Every API error is returned as data: ``{"detail": ..., "code": ...}`` for
single errors and the usual field map for serializer validation errors.
"""

from rest_framework.exceptions import APIException, ValidationError
from rest_framework.views import exception_handler


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, APIException) and not isinstance(exc, ValidationError):
        data = response.data if isinstance(response.data, dict) else {'detail': response.data}
        codes = exc.get_codes()
        if isinstance(codes, str):
            data.setdefault('code', codes)
        response.data = data

    return response
