# shared/common/middleware.py
"""
Request tracing middleware

Every request carries an ``X-Request-ID``, taken from the caller or
generated here. It is echoed on the response, stamped on log records and
included in error envelopes so a failed hold sync can be followed across
the booking service logs.
"""

import uuid
import time
import logging
from contextvars import ContextVar
from typing import Callable, Optional
from django.http import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)

_request_id: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

UNLOGGED_PATHS = frozenset({'/health/', '/health/ready/'})


def get_request_id() -> Optional[str]:
    return _request_id.get()


def client_ip(request: HttpRequest) -> str:
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', '')


class RequestIDLogFilter(logging.Filter):
    """Adds ``request_id`` to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class RequestIDMiddleware:

    def __init__(self, get_response: Callable):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        request.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())

        token = _request_id.set(request.request_id)
        try:
            response = self.get_response(request)
        finally:
            _request_id.reset(token)

        response['X-Request-ID'] = request.request_id
        return response


class LoggingMiddleware:
    """
    Logs each API call with its outcome and duration, and reports the
    duration in ``X-Response-Time``.
    """

    def __init__(self, get_response: Callable):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if request.path in UNLOGGED_PATHS:
            return self.get_response(request)

        started = time.perf_counter()
        logger.info(
            f"{request.method} {request.path} started",
            extra={'method': request.method, 'path': request.path, 'ip_address': client_ip(request)}
        )

        response = self.get_response(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.path} -> {response.status_code} in {elapsed_ms:.1f}ms",
            extra={
                'method': request.method,
                'path': request.path,
                'status_code': response.status_code,
                'duration_ms': round(elapsed_ms, 2),
                'actor_id': request.headers.get('X-User-ID') or str(getattr(getattr(request, 'user', None), 'id', None)),
            }
        )

        response['X-Response-Time'] = f"{elapsed_ms:.2f}ms"
        return response
