# apps/core/tasks.py
"""
Maintenance Scheduling Celery Tasks

Periodic jobs driven by Celery beat: the lead-time activation sweep and
rolling replenishment of rule schedules.
"""

import logging

from celery import shared_task
from django.db import DatabaseError

from .services.exceptions import DependencyError

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def activate_scheduled_work_orders(self):
    """
    Promote scheduled work orders whose lead-time window has opened.

    Safe to run concurrently and repeatedly; orders already promoted are
    skipped.
    """
    try:
        from .services import WorkOrderActivationService

        activated = WorkOrderActivationService().activate_due_work_orders()

        logger.info(f"Activation sweep finished: {len(activated)} work orders promoted")
        return {
            'activated_count': len(activated),
            'work_order_ids': [str(work_order.id) for work_order in activated],
        }

    except DatabaseError as e:
        logger.error(f"Error activating scheduled work orders: {e}")
        raise self.retry(countdown=60, exc=e)


@shared_task(bind=True, max_retries=3)
def replenish_rule_schedules(self):
    """Extend each time-based rule's materialized horizon."""
    try:
        from .services import MaintenanceRuleService

        summary = MaintenanceRuleService().replenish_schedules()

        logger.info(f"Replenished rule schedules: {summary}")
        return summary

    except (DatabaseError, DependencyError) as e:
        logger.error(f"Error replenishing rule schedules: {e}")
        raise self.retry(countdown=300, exc=e)
