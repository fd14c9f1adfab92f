# apps/core/services/rescheduler.py
"""
Completion Rescheduler

Moves a rule's next due date forward after one of its work orders is
completed.
"""

import logging

from django.db import transaction
from django.utils import timezone

from apps.core.events import MaintenanceEventPublisher
from apps.core.models import MaintenanceRule, WorkOrder
from . import intervals
from .exceptions import MaintenanceRuleNotFoundError

logger = logging.getLogger(__name__)


class CompletionRescheduler:
    """
    ``actual_completion`` counts the next interval from the day the work was
    actually finished; ``replan_once`` counts it from the previous due date,
    so a single late completion does not shift the cadence.
    """

    def __init__(self, publisher: MaintenanceEventPublisher = None):
        self.publisher = publisher or MaintenanceEventPublisher()

    @transaction.atomic
    def reschedule(self, work_order: WorkOrder) -> MaintenanceRule:
        try:
            rule = MaintenanceRule.objects.select_for_update().get(id=work_order.rule_id)
        except MaintenanceRule.DoesNotExist:
            raise MaintenanceRuleNotFoundError(f"Maintenance rule {work_order.rule_id} not found")

        if not rule.is_time_based:
            logger.info(f"Rule {rule.id} is usage based, next due date left unchanged")
            return rule

        previous_due_date = rule.next_due_date
        if rule.reschedule_mode == MaintenanceRule.RescheduleMode.REPLAN_ONCE:
            anchor = previous_due_date or rule.start_date
        else:
            anchor = work_order.actual_end or timezone.now()

        rule.next_due_date = intervals.calculate_next_due_date(
            rule.interval_type,
            rule.interval_value,
            anchor
        )
        rule.save(update_fields=['next_due_date', 'updated_at'])

        logger.info(
            f"Rescheduled rule {rule.id} after {work_order.work_order_number}: "
            f"{previous_due_date} -> {rule.next_due_date} ({rule.reschedule_mode})"
        )
        self.publisher.rule_rescheduled(rule, previous_due_date, work_order)
        return rule
