"""
Work Order Model

Concrete units of maintenance work with their per-asset line items,
external offers and append-only state history.
"""

import logging
import uuid
from datetime import date, timedelta
from typing import Optional

from django.db import IntegrityError, models, transaction
from django.utils import timezone

logger = logging.getLogger(__name__)

WORK_ORDER_NUMBER_PREFIX = 'WO'
NUMBER_ALLOCATION_ATTEMPTS = 5


def format_work_order_number(on_date: date, sequence: int) -> str:
    """Format ``WO-YYYYMMDD-NNNN``."""
    return f"{WORK_ORDER_NUMBER_PREFIX}-{on_date:%Y%m%d}-{sequence:04d}"


def next_work_order_number(on_date: Optional[date] = None) -> str:
    """
    Next free number in the per-day sequence.

    Uses the highest sequence already issued for the day rather than a row
    count, so deleted orders never cause a number to be handed out twice.
    """
    on_date = on_date or timezone.localdate()
    prefix = f"{WORK_ORDER_NUMBER_PREFIX}-{on_date:%Y%m%d}-"
    issued = WorkOrder.objects.filter(
        work_order_number__startswith=prefix
    ).values_list('work_order_number', flat=True)

    highest = 0
    for number in issued:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return format_work_order_number(on_date, highest + 1)


class WorkOrder(models.Model):
    """
    Work order for maintenance activities.

    Internal orders are handled by own staff (backlog -> assigned -> planned);
    external orders go through offers from a maintenance company
    (backlog -> offer_requested -> offer_received -> planned). Rule-generated
    orders start in ``scheduled`` until their lead-time window opens.
    """

    class Type(models.TextChoices):
        INTERNAL = 'internal', 'Internal'
        EXTERNAL = 'external', 'External'

    class OrderType(models.TextChoices):
        PLANNED = 'planned', 'Planned'
        UNPLANNED = 'unplanned', 'Unplanned'
        FOLLOW_UP = 'follow_up', 'Follow-up'

    class State(models.TextChoices):
        SCHEDULED = 'scheduled', 'Scheduled'
        BACKLOG = 'backlog', 'Backlog'
        ASSIGNED = 'assigned', 'Assigned'
        OFFER_REQUESTED = 'offer_requested', 'Offer Requested'
        OFFER_RECEIVED = 'offer_received', 'Offer Received'
        PLANNED = 'planned', 'Planned'
        IN_PROGRESS = 'in_progress', 'In Progress'
        COMPLETED = 'completed', 'Completed'
        DONE = 'done', 'Done'
        ABORTED = 'aborted', 'Aborted'
        OBSOLETE = 'obsolete', 'Obsolete'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # ==========================================================================
    # Identification
    # ==========================================================================

    work_order_number = models.CharField(max_length=50, unique=True, blank=True)
    title = models.CharField(max_length=255, blank=True, default='')
    description = models.TextField(blank=True, null=True)

    work_order_type = models.CharField(
        max_length=20,
        choices=Type.choices,
        default=Type.INTERNAL
    )
    order_type = models.CharField(
        max_length=20,
        choices=OrderType.choices,
        default=OrderType.UNPLANNED
    )
    state = models.CharField(
        max_length=20,
        choices=State.choices,
        default=State.BACKLOG,
        db_index=True
    )
    rule_id = models.UUIDField(
        blank=True,
        null=True,
        db_index=True,
        help_text='Originating maintenance rule for scheduled orders'
    )

    # ==========================================================================
    # Responsibility
    # ==========================================================================

    company_id = models.UUIDField(
        blank=True,
        null=True,
        help_text='Maintenance company (external orders only)'
    )
    assigned_to = models.UUIDField(blank=True, null=True)
    assigned_to_name = models.CharField(max_length=255, blank=True, null=True)
    approval_responsible_id = models.UUIDField(blank=True, null=True)

    # ==========================================================================
    # Planning
    # ==========================================================================

    lead_time_days = models.PositiveIntegerField(default=0)
    scheduled_start = models.DateField(blank=True, null=True)
    scheduled_end = models.DateField(blank=True, null=True)
    actual_start = models.DateTimeField(blank=True, null=True)
    actual_end = models.DateTimeField(blank=True, null=True)

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.UUIDField(blank=True, null=True)
    created_by_name = models.CharField(max_length=255, blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'work_orders'
        ordering = ['scheduled_start', 'work_order_number']
        verbose_name = 'Work Order'
        verbose_name_plural = 'Work Orders'
        indexes = [
            models.Index(fields=['state', 'scheduled_start']),
            models.Index(fields=['rule_id', 'state']),
            models.Index(fields=['work_order_number']),
        ]

    def __str__(self):
        return f"{self.work_order_number}: {self.title}"

    def save(self, *args, **kwargs):
        if self.work_order_number:
            return super().save(*args, **kwargs)

        for attempt in range(1, NUMBER_ALLOCATION_ATTEMPTS + 1):
            self.work_order_number = next_work_order_number()
            try:
                with transaction.atomic():
                    return super().save(*args, **kwargs)
            except IntegrityError:
                if attempt == NUMBER_ALLOCATION_ATTEMPTS:
                    raise
                logger.warning(
                    f"Work order number {self.work_order_number} already taken, retrying"
                )

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_internal(self) -> bool:
        return self.work_order_type == self.Type.INTERNAL

    @property
    def is_scheduled(self) -> bool:
        return self.state == self.State.SCHEDULED

    @property
    def activation_date(self) -> Optional[date]:
        """Day the order enters the backlog, ``lead_time_days`` before start."""
        if not self.scheduled_start:
            return None
        return self.scheduled_start - timedelta(days=self.lead_time_days)

    @property
    def all_line_items_completed(self) -> bool:
        return all(
            item.completion_status == WorkOrderLineItem.CompletionStatus.COMPLETED
            for item in self.line_items.all()
        )

    # ==========================================================================
    # History
    # ==========================================================================

    def record_state_change(
        self,
        changed_by: uuid.UUID = None,
        changed_by_name: str = None,
        event: str = None,
        changed_at=None
    ) -> 'WorkOrderStateChange':
        """Append the current state to the history."""
        last = self.history.order_by('-sequence').values_list('sequence', flat=True).first()
        return WorkOrderStateChange.objects.create(
            work_order=self,
            state=self.state,
            event=event,
            changed_by=changed_by,
            changed_by_name=changed_by_name,
            changed_at=changed_at or timezone.now(),
            sequence=(last or 0) + 1,
        )


class WorkOrderLineItem(models.Model):
    """
    A single target asset's completion record within a work order.
    """

    class CompletionStatus(models.TextChoices):
        PENDING = 'pending', 'Pending'
        IN_PROGRESS = 'in_progress', 'In Progress'
        COMPLETED = 'completed', 'Completed'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    work_order = models.ForeignKey(
        WorkOrder,
        on_delete=models.CASCADE,
        related_name='line_items'
    )

    asset_id = models.UUIDField(db_index=True)
    asset_name = models.CharField(max_length=255, blank=True, null=True)
    completion_status = models.CharField(
        max_length=20,
        choices=CompletionStatus.choices,
        default=CompletionStatus.PENDING
    )
    scheduled_date = models.DateField(blank=True, null=True)
    completed_at = models.DateTimeField(blank=True, null=True)
    completed_by = models.UUIDField(blank=True, null=True)
    completed_by_name = models.CharField(max_length=255, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)

    class Meta:
        db_table = 'work_order_line_items'
        ordering = ['scheduled_date', 'asset_name']
        constraints = [
            models.UniqueConstraint(
                fields=['work_order', 'asset_id'],
                name='unique_work_order_asset',
            ),
        ]

    def __str__(self):
        return f"{self.work_order_id} / {self.asset_id}: {self.completion_status}"


class WorkOrderOffer(models.Model):
    """
    Quote received from a maintenance company for an external work order.

    Acceptance is recorded on the work order (``company_id``), not here.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    work_order = models.ForeignKey(
        WorkOrder,
        on_delete=models.CASCADE,
        related_name='offers'
    )

    company_id = models.UUIDField()
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    received_at = models.DateTimeField(default=timezone.now)
    notes = models.TextField(blank=True, null=True)

    class Meta:
        db_table = 'work_order_offers'
        ordering = ['received_at']

    def __str__(self):
        return f"Offer {self.amount} from {self.company_id}"


class WorkOrderStateChange(models.Model):
    """Append-only state history entry."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    work_order = models.ForeignKey(
        WorkOrder,
        on_delete=models.CASCADE,
        related_name='history'
    )

    state = models.CharField(max_length=20, choices=WorkOrder.State.choices)
    event = models.CharField(max_length=30, blank=True, null=True)
    changed_by = models.UUIDField(blank=True, null=True)
    changed_by_name = models.CharField(max_length=255, blank=True, null=True)
    changed_at = models.DateTimeField(default=timezone.now)
    sequence = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'work_order_state_changes'
        ordering = ['sequence', 'changed_at']
        constraints = [
            models.UniqueConstraint(
                fields=['work_order', 'sequence'],
                name='unique_work_order_history_sequence',
            ),
        ]

    def __str__(self):
        return f"{self.work_order_id} -> {self.state}"
