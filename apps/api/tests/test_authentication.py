# apps/api/tests/test_authentication.py
"""
Tests for caller identity, authentication and request middleware
"""

import uuid
from datetime import timedelta

import jwt
from django.conf import settings
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from shared.common.authentication import generate_access_token


class CallerIdentityTest(TestCase):
    """The actor recorded on work orders comes from the token or headers."""

    def setUp(self):
        self.client = APIClient()
        self.url = reverse('api:work-order-list')

    def test_token_identity(self):
        user_id = uuid.uuid4()
        token = generate_access_token(user_id, {'first_name': 'Kari', 'last_name': 'Nordmann'})
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        response = self.client.post(self.url, {'title': 'Token order'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created_by'], str(user_id))
        self.assertEqual(response.data['created_by_name'], 'Kari Nordmann')

    def test_header_identity(self):
        user_id = uuid.uuid4()
        response = self.client.post(
            self.url,
            {'title': 'Header order'},
            format='json',
            HTTP_X_USER_ID=str(user_id),
            HTTP_X_USER_NAME='Ola'
        )

        self.assertEqual(response.data['created_by'], str(user_id))
        self.assertEqual(response.data['created_by_name'], 'Ola')

    def test_service_identity(self):
        self.client.credentials(HTTP_X_SERVICE_AUTH='test-service-token', HTTP_X_SOURCE_SERVICE='booking-service')

        response = self.client.post(self.url, {'title': 'Service order'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['created_by'])
        self.assertEqual(response.data['created_by_name'], 'booking-service')

    def test_anonymous_without_headers(self):
        response = self.client.post(self.url, {'title': 'Anonymous order'}, format='json')

        self.assertIsNone(response.data['created_by'])
        self.assertIsNone(response.data['created_by_name'])

    def test_expired_token_rejected(self):
        now = timezone.now()
        token = jwt.encode(
            {
                'sub': str(uuid.uuid4()),
                'iat': now - timedelta(hours=2),
                'exp': now - timedelta(hours=1),
                'iss': settings.JWT_SETTINGS['ISSUER'],
            },
            settings.JWT_SETTINGS['SIGNING_KEY'],
            algorithm=settings.JWT_SETTINGS['ALGORITHM']
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'UNAUTHORIZED')

    def test_wrong_service_token_rejected(self):
        self.client.credentials(HTTP_X_SERVICE_AUTH='guess')

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class RequestMiddlewareTest(TestCase):

    def setUp(self):
        self.client = APIClient()

    def test_request_id_echoed(self):
        response = self.client.get(reverse('api:work-order-list'), HTTP_X_REQUEST_ID='trace-123')

        self.assertEqual(response['X-Request-ID'], 'trace-123')
        self.assertIn('X-Response-Time', response)

    def test_request_id_generated(self):
        response = self.client.get(reverse('api:rule-list'))
        uuid.UUID(response['X-Request-ID'])

    def test_error_envelope_carries_request_id(self):
        url = reverse('api:work-order-detail', kwargs={'pk': uuid.uuid4()})
        response = self.client.get(url, HTTP_X_REQUEST_ID='trace-404')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error']['request_id'], 'trace-404')

    def test_health_endpoints(self):
        self.assertEqual(self.client.get('/health/').json()['status'], 'ok')
        self.assertEqual(self.client.get('/health/ready/').json()['status'], 'ready')
