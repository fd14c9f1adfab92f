# apps/core/services/exceptions.py
"""
Maintenance Service Exceptions

Each error carries the ``error_code`` and HTTP ``status_code`` the API layer
responds with.
"""


class MaintenanceServiceError(Exception):
    """Base exception for maintenance service errors."""
    error_code = 'MAINTENANCE_ERROR'
    status_code = 400


class MaintenanceValidationError(MaintenanceServiceError):
    """Missing or inconsistent input, e.g. an external rule without a provider."""
    error_code = 'VALIDATION_ERROR'
    status_code = 400

    def __init__(self, message: str, errors: dict = None):
        self.errors = errors or {}
        super().__init__(message)


class MaintenanceRuleNotFoundError(MaintenanceServiceError):
    """Maintenance rule not found."""
    error_code = 'RULE_NOT_FOUND'
    status_code = 404


class WorkOrderNotFoundError(MaintenanceServiceError):
    """Work order not found."""
    error_code = 'WORK_ORDER_NOT_FOUND'
    status_code = 404


class InvalidTransitionError(MaintenanceServiceError):
    """Work order event not allowed from the current state."""
    error_code = 'INVALID_TRANSITION'
    status_code = 409

    def __init__(self, state: str, event: str, reason: str = None):
        self.state = state
        self.event = event
        self.reason = reason
        message = f"Cannot apply {event} to a work order in state '{state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DependencyError(MaintenanceServiceError):
    """A collaborating service or the store failed."""
    error_code = 'DEPENDENCY_FAILURE'
    status_code = 502

    def __init__(self, message: str, partial_result=None):
        self.partial_result = partial_result
        super().__init__(message)


class RuleRescheduleError(MaintenanceServiceError):
    """
    The work order was completed but the rule's next due date was not updated.

    The completion is committed and stays committed; callers retry the
    reschedule or correct the rule manually.
    """
    error_code = 'RULE_RESCHEDULE_FAILED'
    status_code = 500

    def __init__(self, work_order, rule_id, cause: Exception = None):
        self.work_order = work_order
        self.rule_id = rule_id
        self.cause = cause
        super().__init__(
            f"Work order {work_order.work_order_number} completed, "
            f"but rescheduling rule {rule_id} failed: {cause}"
        )
