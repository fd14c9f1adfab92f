# apps/api/views/filters.py
"""
API Filters

Django Filter classes for the maintenance API.
"""

import django_filters

from apps.core.models import MaintenanceCalendarHold, MaintenanceRule, WorkOrder


class MaintenanceRuleFilter(django_filters.FilterSet):
    """Filter for maintenance rule queries."""

    work_type = django_filters.ChoiceFilter(choices=MaintenanceRule.WorkType.choices)
    target_type = django_filters.ChoiceFilter(choices=MaintenanceRule.TargetType.choices)
    interval_type = django_filters.ChoiceFilter(choices=MaintenanceRule.IntervalType.choices)
    is_internal = django_filters.BooleanFilter()
    service_provider_id = django_filters.UUIDFilter()
    due_before = django_filters.DateFilter(field_name='next_due_date', lookup_expr='lte')

    class Meta:
        model = MaintenanceRule
        fields = ['work_type', 'target_type', 'interval_type', 'is_internal', 'service_provider_id']


class WorkOrderFilter(django_filters.FilterSet):
    """Filter for work order queries."""

    state = django_filters.ChoiceFilter(choices=WorkOrder.State.choices)
    state_in = django_filters.BaseInFilter(field_name='state')
    work_order_type = django_filters.ChoiceFilter(choices=WorkOrder.Type.choices)
    order_type = django_filters.ChoiceFilter(choices=WorkOrder.OrderType.choices)
    rule_id = django_filters.UUIDFilter()
    company_id = django_filters.UUIDFilter()
    assigned_to = django_filters.UUIDFilter()
    asset_id = django_filters.UUIDFilter(field_name='line_items__asset_id', distinct=True)
    scheduled_from = django_filters.DateFilter(field_name='scheduled_start', lookup_expr='gte')
    scheduled_to = django_filters.DateFilter(field_name='scheduled_start', lookup_expr='lte')

    class Meta:
        model = WorkOrder
        fields = ['state', 'work_order_type', 'order_type', 'rule_id', 'company_id', 'assigned_to']


class MaintenanceCalendarHoldFilter(django_filters.FilterSet):
    """Filter for calendar hold queries."""

    plan_id = django_filters.UUIDFilter()
    asset_id = django_filters.UUIDFilter()
    status = django_filters.ChoiceFilter(choices=MaintenanceCalendarHold.Status.choices)

    class Meta:
        model = MaintenanceCalendarHold
        fields = ['plan_id', 'asset_id', 'status']
