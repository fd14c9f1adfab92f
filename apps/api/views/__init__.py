# apps/api/views/__init__.py
"""
Maintenance API Views
"""

from .rule_views import MaintenanceRuleViewSet
from .work_order_views import WorkOrderViewSet
from .plan_views import MaintenanceCalendarHoldViewSet, MaintenancePlanViewSet
from .common import resolve_actor

__all__ = [
    'MaintenanceRuleViewSet',
    'WorkOrderViewSet',
    'MaintenanceCalendarHoldViewSet',
    'MaintenancePlanViewSet',
    'resolve_actor',
]
