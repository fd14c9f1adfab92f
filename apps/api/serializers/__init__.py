# apps/api/serializers/__init__.py
"""
Maintenance API Serializers
"""

from .rule_serializers import (
    MaintenanceRuleSerializer,
    MaintenanceRuleWriteSerializer,
    RulePreviewSerializer,
    RuleConflictSerializer,
)

from .work_order_serializers import (
    WorkOrderLineItemSerializer,
    WorkOrderOfferSerializer,
    WorkOrderStateChangeSerializer,
    WorkOrderListSerializer,
    WorkOrderDetailSerializer,
    WorkOrderCreateSerializer,
    WorkOrderUpdateSerializer,
    WorkOrderTransitionSerializer,
    AvailableTransitionSerializer,
    WorkOrderOfferCreateSerializer,
    LineItemCompleteSerializer,
    LineItemBulkStatusSerializer,
)

from .plan_serializers import (
    MaintenancePlanSerializer,
    PlanActionSerializer,
    PlanDispatchSerializer,
    PlanBulkStatusSerializer,
    PlanSyncHoldsSerializer,
    MaintenanceCalendarHoldSerializer,
)

__all__ = [
    'MaintenanceRuleSerializer',
    'MaintenanceRuleWriteSerializer',
    'RulePreviewSerializer',
    'RuleConflictSerializer',
    'WorkOrderLineItemSerializer',
    'WorkOrderOfferSerializer',
    'WorkOrderStateChangeSerializer',
    'WorkOrderListSerializer',
    'WorkOrderDetailSerializer',
    'WorkOrderCreateSerializer',
    'WorkOrderUpdateSerializer',
    'WorkOrderTransitionSerializer',
    'AvailableTransitionSerializer',
    'WorkOrderOfferCreateSerializer',
    'LineItemCompleteSerializer',
    'LineItemBulkStatusSerializer',
    'MaintenancePlanSerializer',
    'PlanActionSerializer',
    'PlanDispatchSerializer',
    'PlanBulkStatusSerializer',
    'PlanSyncHoldsSerializer',
    'MaintenanceCalendarHoldSerializer',
]
