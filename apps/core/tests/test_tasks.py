# apps/core/tests/test_tasks.py
"""
Tests for the periodic Celery tasks
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.utils import timezone

from apps.core.models import WorkOrder
from apps.core.tasks import activate_scheduled_work_orders, replenish_rule_schedules


@pytest.mark.django_db
class TestTasks:

    def test_activation_task(self, rule_service, rule_data):
        rule = rule_service.create_rule({
            **rule_data,
            'interval_type': 'days',
            'interval_value': 30,
            'start_date': timezone.localdate() - timedelta(days=10),
            'lead_time_days': 0,
        })

        summary = activate_scheduled_work_orders()

        assert summary['activated_count'] == 1
        backlog = WorkOrder.objects.get(rule_id=rule.id, state=WorkOrder.State.BACKLOG)
        assert summary['work_order_ids'] == [str(backlog.id)]

    def test_activation_task_retries_on_database_error(self):
        with patch(
            'apps.core.services.WorkOrderActivationService.activate_due_work_orders',
            side_effect=DatabaseError('connection lost')
        ):
            with pytest.raises(DatabaseError):
                activate_scheduled_work_orders()

    def test_replenish_task(self, rule_service, rule_data):
        rule = rule_service.create_rule(rule_data)
        WorkOrder.objects.filter(rule_id=rule.id).update(state=WorkOrder.State.DONE)

        assert replenish_rule_schedules() == {str(rule.id): 6}
