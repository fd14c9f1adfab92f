# apps/core/tests/test_events.py
"""
Tests for event publishing
"""

import json
import uuid
from datetime import date
from decimal import Decimal

from apps.core.events import HistoryActions, MaintenanceEventPublisher, MaintenanceEventTypes


def failing_transport(message):
    raise ConnectionError('broker unavailable')


class TestMaintenanceEventPublisher:

    def test_publish_serializes_domain_values(self, publisher, transport):
        rule_id = uuid.uuid4()

        assert publisher.publish('maintenance.test', {
            'rule_id': rule_id,
            'due': date(2025, 3, 10),
            'amount': Decimal('12.50'),
        })

        event = json.loads(transport.messages[0])
        assert event['event_type'] == 'maintenance.test'
        assert event['service'] == 'maintenance-service'
        assert event['data'] == {'rule_id': str(rule_id), 'due': '2025-03-10', 'amount': 12.5}

    def test_transport_failure_is_swallowed(self):
        """Test a broken transport never fails the caller."""
        publisher = MaintenanceEventPublisher(transport=failing_transport)
        assert publisher.publish('maintenance.test', {}) is False

    def test_record_change(self, publisher, transport):
        entity_id = uuid.uuid4()

        publisher.record_change(
            entity_type='asset',
            entity_id=entity_id,
            action=HistoryActions.MAINTENANCE_PERFORMED,
            changed_by_name='Kari',
            changes=[{'field': 'maintenance_status', 'old_value': None, 'new_value': 'completed'}],
        )

        event = json.loads(transport.messages[0])
        assert event['event_type'] == MaintenanceEventTypes.HISTORY_RECORDED
        assert event['data']['entity_id'] == str(entity_id)
        assert event['data']['action'] == 'maintenance_performed'
        assert event['data']['changes'][0]['new_value'] == 'completed'
