"""
Maintenance Rule Model

A recurring maintenance policy that materializes work orders on a schedule.
"""

import uuid
from datetime import date
from typing import List, Optional

from django.db import models


class MaintenanceRule(models.Model):
    """
    Recurring maintenance rule.

    Targets exactly one selector (assets, kits, models or tags) and repeats
    every ``interval_value`` days or months, or every N uses.
    """

    class WorkType(models.TextChoices):
        INSPECTION = 'inspection', 'Inspection'
        SERVICE = 'service', 'Service'
        CALIBRATION = 'calibration', 'Calibration'
        REPAIR = 'repair', 'Repair'
        CLEANING = 'cleaning', 'Cleaning'
        CUSTOM = 'custom', 'Custom'

    class TargetType(models.TextChoices):
        ASSET = 'asset', 'Asset'
        KIT = 'kit', 'Kit'
        MODEL = 'model', 'Model'
        TAG = 'tag', 'Tag'

    class IntervalType(models.TextChoices):
        DAYS = 'days', 'Days'
        MONTHS = 'months', 'Months'
        USES = 'uses', 'Uses'

    class RescheduleMode(models.TextChoices):
        ACTUAL_COMPLETION = 'actual_completion', 'Anchor to actual completion'
        REPLAN_ONCE = 'replan_once', 'Keep the planned cadence'

    # Fields whose change invalidates already materialized scheduled orders
    TEMPORAL_FIELDS = (
        'interval_type',
        'interval_value',
        'start_date',
        'lead_time_days',
        'target_type',
        'target_ids',
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # ==========================================================================
    # Identification
    # ==========================================================================

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    work_type = models.CharField(
        max_length=20,
        choices=WorkType.choices,
        default=WorkType.INSPECTION
    )
    work_type_label = models.CharField(
        max_length=100,
        blank=True,
        null=True,
        help_text='Free-text label for custom work types'
    )

    # ==========================================================================
    # Responsibility
    # ==========================================================================

    is_internal = models.BooleanField(default=True)
    service_provider_id = models.UUIDField(
        blank=True,
        null=True,
        help_text='Maintenance company performing external work'
    )

    # ==========================================================================
    # Targets
    # ==========================================================================

    target_type = models.CharField(
        max_length=10,
        choices=TargetType.choices,
        default=TargetType.ASSET
    )
    target_ids = models.JSONField(default=list, blank=True)

    # ==========================================================================
    # Interval
    # ==========================================================================

    interval_type = models.CharField(
        max_length=10,
        choices=IntervalType.choices,
        default=IntervalType.MONTHS
    )
    interval_value = models.PositiveIntegerField(default=1)
    start_date = models.DateField()
    next_due_date = models.DateField(blank=True, null=True, db_index=True)
    lead_time_days = models.PositiveIntegerField(default=0)
    reschedule_mode = models.CharField(
        max_length=20,
        choices=RescheduleMode.choices,
        default=RescheduleMode.ACTUAL_COMPLETION
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.UUIDField(blank=True, null=True)
    created_by_name = models.CharField(max_length=255, blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'maintenance_rules'
        ordering = ['next_due_date', 'name']
        verbose_name = 'Maintenance Rule'
        verbose_name_plural = 'Maintenance Rules'
        indexes = [
            models.Index(fields=['target_type']),
            models.Index(fields=['interval_type']),
        ]

    def __str__(self):
        return f"{self.name} (every {self.interval_value} {self.interval_type})"

    @property
    def is_time_based(self) -> bool:
        return self.interval_type != self.IntervalType.USES

    @property
    def work_type_display_label(self) -> str:
        if self.work_type == self.WorkType.CUSTOM and self.work_type_label:
            return self.work_type_label
        return self.get_work_type_display()

    @property
    def target_asset_ids(self) -> List[str]:
        """Asset ids when the rule targets assets directly."""
        if self.target_type != self.TargetType.ASSET:
            return []
        return [str(target_id) for target_id in self.target_ids]

    def effective_anchor(self) -> Optional[date]:
        """Date the next occurrence is counted from."""
        return self.next_due_date or self.start_date
