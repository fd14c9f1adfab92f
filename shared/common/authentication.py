# shared/common/authentication.py
"""
Caller authentication

Technicians and planners arrive with a bearer token issued by the identity
service; the booking and asset services call back with the shared service
token. Either way ``request.user`` ends up carrying the identity that work
order history and calendar holds are recorded under.
"""

import jwt
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple
from django.conf import settings
from rest_framework import authentication, exceptions
from rest_framework.request import Request

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ['exp', 'iat', 'sub', 'iss']


def _bearer_token(request: Request, keyword: str) -> Optional[str]:
    header = authentication.get_authorization_header(request)
    if not header:
        return None

    try:
        parts = header.decode('utf-8').split()
    except UnicodeDecodeError:
        raise exceptions.AuthenticationFailed('Invalid token header encoding')

    if not parts or parts[0].lower() != keyword.lower():
        return None
    if len(parts) != 2:
        raise exceptions.AuthenticationFailed('Invalid token header format')
    return parts[1]


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature, expiry and issuer of an access token."""
    jwt_settings = settings.JWT_SETTINGS
    try:
        return jwt.decode(
            token,
            jwt_settings['VERIFYING_KEY'],
            algorithms=[jwt_settings['ALGORITHM']],
            issuer=jwt_settings['ISSUER'],
            options={'require': REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError:
        raise exceptions.AuthenticationFailed('Token has expired')
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected access token: {e}")
        raise exceptions.AuthenticationFailed('Invalid token')


class JWTAuthentication(authentication.BaseAuthentication):
    """Bearer token authentication for technicians and planners."""

    keyword = 'Bearer'

    def authenticate(self, request: Request) -> Optional[Tuple[Any, Dict]]:
        token = _bearer_token(request, self.keyword)
        if token is None:
            return None
        payload = decode_access_token(token)
        return (TokenUser(payload), payload)

    def authenticate_header(self, request: Request) -> str:
        return self.keyword


class ServiceAuthentication(authentication.BaseAuthentication):
    """
    Shared-secret authentication for collaborating services.

    The calling service names itself in ``X-Source-Service``.
    """

    keyword = 'Service'

    def authenticate(self, request: Request) -> Optional[Tuple[Any, Dict]]:
        service_token = request.headers.get('X-Service-Auth')
        if not service_token:
            return None

        if service_token != settings.SERVICE_AUTH_TOKEN:
            logger.warning(f"Invalid service token from {request.headers.get('X-Source-Service', 'unknown')}")
            raise exceptions.AuthenticationFailed('Invalid service token')

        source_service = request.headers.get('X-Source-Service', 'unknown')
        return (ServiceUser(source_service), {'service': source_service})

    def authenticate_header(self, request: Request) -> str:
        return self.keyword


class TokenUser:
    """A person identified by an access token."""

    is_service = False
    is_active = True
    is_authenticated = True
    is_anonymous = False

    def __init__(self, payload: Dict):
        self.payload = payload
        self.id = payload.get('sub')
        self.first_name = payload.get('first_name')
        self.last_name = payload.get('last_name')
        self.name = payload.get('name')

    @property
    def display_name(self) -> Optional[str]:
        if self.name:
            return self.name
        return ' '.join(part for part in (self.first_name, self.last_name) if part) or None

    def __str__(self) -> str:
        return f"TokenUser({self.id})"


class ServiceUser:
    """A collaborating service; it has no user id of its own."""

    is_service = True
    is_active = True
    is_authenticated = True
    is_anonymous = False

    def __init__(self, service_name: str):
        self.id = None
        self.display_name = service_name

    def __str__(self) -> str:
        return f"ServiceUser({self.display_name})"


def generate_access_token(user_id, claims: Dict = None) -> str:
    """Issue an access token for ``user_id`` with optional name claims."""
    jwt_settings = settings.JWT_SETTINGS
    now = datetime.now(timezone.utc)

    payload = {
        **(claims or {}),
        'sub': str(user_id),
        'iat': now,
        'exp': now + jwt_settings['ACCESS_TOKEN_LIFETIME'],
        'iss': jwt_settings['ISSUER'],
    }
    return jwt.encode(payload, jwt_settings['SIGNING_KEY'], algorithm=jwt_settings['ALGORITHM'])
