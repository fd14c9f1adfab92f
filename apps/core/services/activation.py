# apps/core/services/activation.py
"""
Lead-Time Activation

Promotes scheduled work orders to the backlog once the current day reaches
``scheduled_start - lead_time_days``.
"""

import logging
from datetime import datetime
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from apps.core.events import MaintenanceEventPublisher
from apps.core.models import WorkOrder
from . import intervals
from .actor import Actor

logger = logging.getLogger(__name__)


class WorkOrderActivationService:

    def __init__(self, publisher: MaintenanceEventPublisher = None):
        self.publisher = publisher or MaintenanceEventPublisher()

    def activate_due_work_orders(self, now: Optional[datetime] = None) -> List[WorkOrder]:
        """
        Sweep scheduled work orders and move those inside their lead-time
        window to the backlog.

        Only ``scheduled`` orders are examined, so running the sweep again
        is a no-op for orders it already promoted.
        """
        today = intervals.as_date(now or timezone.now())
        actor = Actor.automation()
        activated = []

        scheduled = WorkOrder.objects.filter(
            state=WorkOrder.State.SCHEDULED,
            scheduled_start__isnull=False,
        ).order_by('scheduled_start')

        for work_order in list(scheduled):
            if today < work_order.activation_date:
                continue
            with transaction.atomic():
                # Conditional update keeps concurrent sweeps from double-promoting
                promoted = WorkOrder.objects.filter(
                    id=work_order.id,
                    state=WorkOrder.State.SCHEDULED
                ).update(state=WorkOrder.State.BACKLOG)
                if not promoted:
                    continue
                work_order.state = WorkOrder.State.BACKLOG
                work_order.record_state_change(actor.id, actor.name, changed_at=now)

            logger.info(
                f"Activated work order {work_order.work_order_number} "
                f"(start {work_order.scheduled_start}, lead time {work_order.lead_time_days}d)"
            )
            self.publisher.work_order_activated(work_order)
            activated.append(work_order)

        if activated:
            logger.info(f"Activation sweep promoted {len(activated)} work orders")
        return activated
