# apps/core/tests/test_clients.py
"""
Tests for the booking and asset service clients and target resolution
"""

import json
import uuid
from datetime import date

import httpx
import pytest
from asgiref.sync import async_to_sync

from apps.core.models import MaintenanceRule
from apps.core.services import DependencyError, TargetResolver
from shared.common.clients import AssetServiceClient, BookingServiceClient, CircuitBreakerError


class TestBookingServiceClient:

    def test_create_booking(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201, json={'id': 'b-1'})

        client = BookingServiceClient(base_url='http://booking', transport=httpx.MockTransport(handler))
        booking = async_to_sync(client.create_booking)({'asset_id': 'a-1'})

        assert booking == {'id': 'b-1'}
        request = requests[0]
        assert request.method == 'POST'
        assert request.url.path == '/api/v1/bookings/'
        assert request.headers['X-Service-Auth'] == 'test-service-token'
        assert json.loads(request.content) == {'asset_id': 'a-1'}

    def test_cancel_booking_patches_status(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(204)

        client = BookingServiceClient(base_url='http://booking', transport=httpx.MockTransport(handler))
        assert async_to_sync(client.cancel_booking)('b-1', 'window moved') == {}

        assert requests[0].method == 'PATCH'
        assert requests[0].url.path == '/api/v1/bookings/b-1/'
        assert json.loads(requests[0].content) == {'status': 'cancelled', 'cancellation_reason': 'window moved'}

    def test_circuit_opens_after_repeated_server_errors(self):
        """Test the client stops calling a service that keeps failing."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = BookingServiceClient(base_url='http://booking', transport=httpx.MockTransport(handler))
        for _ in range(client.circuit_breaker.failure_threshold):
            with pytest.raises(httpx.HTTPStatusError):
                async_to_sync(client.get_booking)('b-1')

        with pytest.raises(CircuitBreakerError):
            async_to_sync(client.get_booking)('b-1')
        assert len(calls) == client.circuit_breaker.failure_threshold

    def test_client_errors_do_not_trip_circuit(self):
        client = BookingServiceClient(
            base_url='http://booking',
            transport=httpx.MockTransport(lambda request: httpx.Response(404))
        )
        with pytest.raises(httpx.HTTPStatusError):
            async_to_sync(client.get_booking)('missing')
        assert client.circuit_breaker.failure_count == 0


def kit_rule(kit_id):
    return MaintenanceRule(
        name='Kit service',
        target_type=MaintenanceRule.TargetType.KIT,
        target_ids=[kit_id],
        interval_type='months',
        interval_value=1,
        start_date=date(2025, 1, 1),
    )


class TestTargetResolver:

    def test_asset_targets_resolve_to_themselves(self):
        asset_id = str(uuid.uuid4())
        rule = MaintenanceRule(target_type='asset', target_ids=[asset_id])

        assert [asset.asset_id for asset in TargetResolver().resolve(rule)] == [asset_id]

    def test_kit_targets_expanded(self):
        kit_id = str(uuid.uuid4())
        drill = str(uuid.uuid4())
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={'results': [
                {'id': drill, 'name': 'Drill'},
                {'id': drill, 'name': 'Drill'},
                {'id': 'not-a-uuid', 'name': 'Broken'},
            ]})

        client = AssetServiceClient(base_url='http://assets', transport=httpx.MockTransport(handler))
        resolved = TargetResolver(asset_client=client).resolve(kit_rule(kit_id))

        assert [(asset.asset_id, asset.asset_name) for asset in resolved] == [(drill, 'Drill')]
        assert requests[0].url.params['kit_ids'] == kit_id

    def test_asset_service_failure(self):
        def handler(request):
            raise httpx.ConnectError('connection refused', request=request)

        client = AssetServiceClient(base_url='http://assets', transport=httpx.MockTransport(handler))

        with pytest.raises(DependencyError):
            TargetResolver(asset_client=client).resolve(kit_rule(str(uuid.uuid4())))

    def test_unsupported_target_type(self):
        client = AssetServiceClient(base_url='http://assets')
        with pytest.raises(ValueError):
            async_to_sync(client.get_assets_for_target)('asset', [])
