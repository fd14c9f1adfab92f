# apps/api/views/common.py
"""
Helpers shared by the maintenance API views.
"""

import logging

from rest_framework.response import Response

from apps.core.services import Actor, MaintenanceServiceError

logger = logging.getLogger(__name__)


def resolve_actor(request) -> Actor:
    """
    Identity of the caller.

    Token users are taken from the token; service callers and anonymous
    requests fall back to the ``X-User-ID`` / ``X-User-Name`` headers.
    """
    user = getattr(request, 'user', None)
    is_service = getattr(user, 'is_service', False)
    if user is not None and user.is_authenticated and not is_service:
        return Actor.from_user(user.id, user.display_name)

    name = request.headers.get('X-User-Name')
    if not name and is_service:
        name = user.display_name
    return Actor.from_user(request.headers.get('X-User-ID'), name)


def service_error_response(error: MaintenanceServiceError, **extra) -> Response:
    """Response for a service error at the error's own status code."""
    if error.status_code >= 500:
        logger.error(f"{error.error_code}: {error}")
    body = {'error': str(error), 'code': error.error_code}
    errors = getattr(error, 'errors', None)
    if errors:
        body['errors'] = errors
    body.update(extra)
    return Response(body, status=error.status_code)
