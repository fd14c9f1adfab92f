# apps/core/services/__init__.py
"""
Maintenance Scheduling Business Logic
"""

from .exceptions import (
    MaintenanceServiceError,
    MaintenanceValidationError,
    MaintenanceRuleNotFoundError,
    WorkOrderNotFoundError,
    InvalidTransitionError,
    DependencyError,
    RuleRescheduleError,
)
from .actor import Actor
from .results import BatchResult
from .state_machine import WorkOrderEvent, machine_for
from .targets import TargetResolver
from .rule_service import MaintenanceRuleService
from .rescheduler import CompletionRescheduler
from .work_order_service import WorkOrderService
from .activation import WorkOrderActivationService
from .hold_sync import MaintenanceHoldSynchronizer, HoldSyncResult, apply_hold_sync_result

__all__ = [
    'MaintenanceServiceError',
    'MaintenanceValidationError',
    'MaintenanceRuleNotFoundError',
    'WorkOrderNotFoundError',
    'InvalidTransitionError',
    'DependencyError',
    'RuleRescheduleError',
    'Actor',
    'BatchResult',
    'WorkOrderEvent',
    'machine_for',
    'TargetResolver',
    'MaintenanceRuleService',
    'CompletionRescheduler',
    'WorkOrderService',
    'WorkOrderActivationService',
    'MaintenanceHoldSynchronizer',
    'HoldSyncResult',
    'apply_hold_sync_result',
]
