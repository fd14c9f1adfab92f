# conftest.py
"""
Pytest configuration for the Maintenance Scheduling Service
"""

import json
import uuid
from datetime import date, datetime, timezone as dt_timezone

import httpx
import pytest


# =============================================================================
# Fakes
# =============================================================================

class RecordingTransport:
    """Event transport that keeps every published message."""

    def __init__(self):
        self.messages = []

    def __call__(self, message: str) -> None:
        self.messages.append(message)

    @property
    def event_types(self):
        return [json.loads(message)['event_type'] for message in self.messages]


class FakeBookingClient:
    """In-memory stand-in for the booking service."""

    def __init__(self, fail_after=None, fail_cancel=False):
        # fail_after=N books N holds, then every further booking fails
        self.fail_after = fail_after
        self.fail_cancel = fail_cancel
        self.created = []
        self.cancelled = []

    async def create_booking(self, data):
        if self.fail_after is not None and len(self.created) >= self.fail_after:
            raise httpx.ConnectError('booking service unreachable')
        self.created.append(data)
        return {'id': f"booking-{len(self.created)}", **data}

    async def cancel_booking(self, booking_id, reason=None):
        if self.fail_cancel:
            raise httpx.ConnectError('booking service unreachable')
        self.cancelled.append((booking_id, reason))
        return {'id': booking_id, 'status': 'cancelled'}


class FakeTargetResolver:
    """Resolves every rule to a fixed asset list."""

    def __init__(self, assets=None, error=None):
        self.assets = assets or []
        self.error = error
        self.calls = 0

    def resolve(self, rule):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.assets)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def user_id():
    """Generate a test user ID."""
    return uuid.uuid4()


@pytest.fixture
def actor(user_id):
    from apps.core.services import Actor
    return Actor(id=user_id, name='Test Technician')


@pytest.fixture
def asset_ids():
    return [str(uuid.uuid4()), str(uuid.uuid4())]


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def publisher(transport):
    from apps.core.events import MaintenanceEventPublisher
    return MaintenanceEventPublisher(transport=transport)


@pytest.fixture
def rule_service(publisher):
    from apps.core.services import MaintenanceRuleService
    return MaintenanceRuleService(publisher=publisher)


@pytest.fixture
def work_order_service(publisher):
    from apps.core.services import WorkOrderService
    return WorkOrderService(publisher=publisher)


@pytest.fixture
def booking_client():
    return FakeBookingClient()


@pytest.fixture
def booking_client_factory():
    return FakeBookingClient


@pytest.fixture
def resolver_factory():
    return FakeTargetResolver


@pytest.fixture
def rule_data(asset_ids):
    """Monthly internal inspection rule on two assets."""
    return {
        'name': 'Monthly Inspection',
        'work_type': 'inspection',
        'is_internal': True,
        'target_type': 'asset',
        'target_ids': asset_ids,
        'interval_type': 'months',
        'interval_value': 1,
        'start_date': date(2025, 1, 10),
        'lead_time_days': 7,
        'reschedule_mode': 'actual_completion',
    }


@pytest.fixture
def moment():
    """Build an aware UTC datetime."""
    def build(year, month, day, hour=12):
        return datetime(year, month, day, hour, tzinfo=dt_timezone.utc)
    return build
