# apps/core/services/intervals.py
"""
Interval Calculator

Pure date arithmetic for maintenance intervals. Month arithmetic clamps to
the last day of the target month (Jan 31 + 1 month -> Feb 28/29).
"""

from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Union

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from apps.core.models import MaintenanceRule
from .exceptions import MaintenanceValidationError

IntervalType = MaintenanceRule.IntervalType

DateLike = Union[date, datetime]


def as_date(value: DateLike) -> date:
    """Drop the time of day from a timestamp anchor."""
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    return value


def is_time_based(interval_type: str) -> bool:
    """Usage-based intervals have no calendar due date."""
    return interval_type in (IntervalType.DAYS, IntervalType.MONTHS)


def _validate(interval_type: str, interval_value: int) -> None:
    if interval_type not in IntervalType.values:
        raise MaintenanceValidationError(f"Unknown interval type: {interval_type}")
    if not isinstance(interval_value, int) or isinstance(interval_value, bool) or interval_value < 1:
        raise MaintenanceValidationError(
            f"Interval value must be a positive integer, got {interval_value!r}"
        )


def add_interval(
    anchor: DateLike,
    interval_type: str,
    interval_value: int,
    multiple: int = 1
) -> Optional[date]:
    """
    Advance ``anchor`` by ``multiple`` intervals.

    Returns None for usage-based intervals.
    """
    _validate(interval_type, interval_value)
    if not is_time_based(interval_type):
        return None

    anchor = as_date(anchor)
    steps = interval_value * multiple
    if interval_type == IntervalType.MONTHS:
        return anchor + relativedelta(months=steps)
    return anchor + timedelta(days=steps)


def calculate_next_due_date(
    interval_type: str,
    interval_value: int,
    anchor: DateLike
) -> Optional[date]:
    """Next due date one interval after ``anchor``."""
    return add_interval(anchor, interval_type, interval_value)


def iter_due_dates(
    anchor: DateLike,
    interval_type: str,
    interval_value: int,
    until: Optional[date] = None
) -> Iterator[date]:
    """
    Yield the anchor and every following occurrence.

    Each occurrence is computed from the anchor itself, so month-end clamping
    in one month does not shift the rest of the series (Jan 31, Feb 28,
    Mar 31, ...).
    """
    _validate(interval_type, interval_value)
    if not is_time_based(interval_type):
        return

    multiple = 0
    while True:
        due = add_interval(anchor, interval_type, interval_value, multiple)
        if until is not None and due > until:
            return
        yield due
        multiple += 1


def activation_date(due_date: date, lead_time_days: int) -> date:
    """Day an occurrence becomes actionable."""
    return due_date - timedelta(days=lead_time_days or 0)
