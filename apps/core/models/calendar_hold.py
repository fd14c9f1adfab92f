"""
Maintenance Calendar Hold Model

Booking-backed reservation that blocks an asset while a maintenance plan
is in its planned window.
"""

import uuid

from django.db import models
from django.db.models import Q


class MaintenanceCalendarHold(models.Model):

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        RELEASED = 'released', 'Released'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    plan_id = models.UUIDField(db_index=True)
    asset_id = models.UUIDField(db_index=True)
    asset_name = models.CharField(max_length=255, blank=True, null=True)

    start_date = models.DateField()
    end_date = models.DateField()
    hold_color = models.CharField(max_length=20)
    booking_id = models.CharField(max_length=64, blank=True, null=True)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE
    )
    released_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.UUIDField(blank=True, null=True)
    created_by_name = models.CharField(max_length=255, blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'maintenance_calendar_holds'
        ordering = ['start_date', 'asset_name']
        verbose_name = 'Maintenance Calendar Hold'
        verbose_name_plural = 'Maintenance Calendar Holds'
        constraints = [
            models.UniqueConstraint(
                fields=['plan_id', 'asset_id'],
                condition=Q(status='active'),
                name='unique_active_hold_per_plan_asset',
            ),
        ]

    def __str__(self):
        return f"Hold {self.asset_id} {self.start_date} - {self.end_date} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE

    def matches_window(self, start_date, end_date, hold_color) -> bool:
        """Whether the hold already covers the given window and color."""
        return (
            self.start_date == start_date
            and self.end_date == end_date
            and self.hold_color == hold_color
        )
