# shared/common/exceptions.py
"""
API Exception Handler

Gives every error response the same envelope:
``{'success': False, 'error': {'code', 'message', 'details', 'request_id'}}``.
"""

import logging
import traceback
from typing import Optional
from rest_framework import status
from rest_framework.views import exception_handler
from rest_framework.response import Response
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from django.conf import settings

logger = logging.getLogger(__name__)


DRF_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: 'VALIDATION_ERROR',
    status.HTTP_401_UNAUTHORIZED: 'UNAUTHORIZED',
    status.HTTP_403_FORBIDDEN: 'FORBIDDEN',
    status.HTTP_404_NOT_FOUND: 'NOT_FOUND',
    status.HTTP_405_METHOD_NOT_ALLOWED: 'METHOD_NOT_ALLOWED',
    status.HTTP_429_TOO_MANY_REQUESTS: 'TOO_MANY_REQUESTS',
}


def error_body(code: str, message: str, details=None, request_id: str = None) -> dict:
    body = {
        'success': False,
        'error': {
            'code': code,
            'message': message,
            'request_id': request_id,
        }
    }
    if details:
        body['error']['details'] = details
    return body


def custom_exception_handler(exc, context) -> Optional[Response]:
    """
    Wrap DRF and Django errors in the envelope. Service errors raised by
    the maintenance services are answered by the views themselves and never
    reach this handler.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    response = exception_handler(exc, context)

    if response is not None:
        return format_error_response(exc, response, request_id)

    if isinstance(exc, DjangoValidationError):
        errors = exc.message_dict if hasattr(exc, 'message_dict') else {'detail': exc.messages}
        return Response(
            error_body('VALIDATION_ERROR', 'Validation error', errors, request_id),
            status=status.HTTP_400_BAD_REQUEST
        )

    if isinstance(exc, Http404):
        return Response(
            error_body('NOT_FOUND', str(exc) or 'Resource not found', request_id=request_id),
            status=status.HTTP_404_NOT_FOUND
        )

    logger.exception(
        f"Unhandled exception: {exc}",
        extra={'exception_type': type(exc).__name__}
    )

    if settings.DEBUG:
        body = error_body('INTERNAL_ERROR', str(exc), request_id=request_id)
        body['error']['type'] = type(exc).__name__
        body['error']['traceback'] = traceback.format_exc().split('\n')
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(
        error_body('INTERNAL_ERROR', 'An unexpected error occurred. Please try again later.', request_id=request_id),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def format_error_response(exc, response: Response, request_id: str = None) -> Response:
    error_code = DRF_ERROR_CODES.get(response.status_code, 'ERROR')
    details = None
    if isinstance(response.data, dict) and 'detail' not in response.data:
        # Field-level validation errors from serializers
        details = response.data
    elif isinstance(response.data, list):
        details = {'non_field_errors': response.data}

    response.data = error_body(error_code, get_error_message(exc, response), details, request_id)
    return response


def get_error_message(exc, response: Response) -> str:
    if hasattr(exc, 'detail'):
        if isinstance(exc.detail, str):
            return exc.detail
        if isinstance(exc.detail, list) and exc.detail:
            return str(exc.detail[0])
        if isinstance(exc.detail, dict):
            return str(exc.detail.get('detail', 'Validation error'))

    if isinstance(response.data, dict):
        return str(response.data.get('detail', response.data))

    return str(response.data)
