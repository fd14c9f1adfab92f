"""
Maintenance Scheduling Models

Rules, the work orders they materialize, and calendar holds for
maintenance plans.
"""

from .maintenance_rule import MaintenanceRule
from .work_order import (
    WorkOrder,
    WorkOrderLineItem,
    WorkOrderOffer,
    WorkOrderStateChange,
    format_work_order_number,
    next_work_order_number,
)
from .calendar_hold import MaintenanceCalendarHold

__all__ = [
    'MaintenanceRule',
    'WorkOrder',
    'WorkOrderLineItem',
    'WorkOrderOffer',
    'WorkOrderStateChange',
    'MaintenanceCalendarHold',
    'format_work_order_number',
    'next_work_order_number',
]
