# apps/core/events.py
"""
Maintenance Scheduling Events

Domain events and audit history records published to other services.
Publishing is fire-and-forget: a failing transport is logged and never
interrupts the operation that produced the event.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from django.utils import timezone

logger = logging.getLogger(__name__)


class EventEncoder(json.JSONEncoder):
    """JSON encoder for Decimal, UUID and date values."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


class MaintenanceEventTypes:
    """Event type constants for the maintenance scheduling service."""

    # Rule Events
    RULE_CREATED = 'maintenance.rule.created'
    RULE_UPDATED = 'maintenance.rule.updated'
    RULE_DELETED = 'maintenance.rule.deleted'
    RULE_RESCHEDULED = 'maintenance.rule.rescheduled'

    # Work Order Events
    WORK_ORDER_CREATED = 'maintenance.work_order.created'
    WORK_ORDERS_MATERIALIZED = 'maintenance.work_order.materialized'
    WORK_ORDER_ACTIVATED = 'maintenance.work_order.activated'
    WORK_ORDER_TRANSITIONED = 'maintenance.work_order.transitioned'
    WORK_ORDER_OFFER_RECEIVED = 'maintenance.work_order.offer_received'

    # Calendar Hold Events
    HOLD_CREATED = 'maintenance.hold.created'
    HOLD_RELEASED = 'maintenance.hold.released'

    # Audit history
    HISTORY_RECORDED = 'maintenance.history.recorded'


class HistoryActions:
    """Actions recorded in the audit history."""

    STATUS_CHANGED = 'status_changed'
    MAINTENANCE_PERFORMED = 'maintenance_performed'
    MAINTENANCE_SKIPPED = 'maintenance_skipped'
    MAINTENANCE_REOPENED = 'maintenance_reopened'


def _log_transport(message: str) -> None:
    logger.info(f"Event published: {message}")


class MaintenanceEventPublisher:
    """
    Publisher for maintenance scheduling events.

    ``transport`` receives the serialized message; the default writes it to
    the service log.
    """

    def __init__(self, transport: Callable[[str], Any] = None):
        self.transport = transport or _log_transport

    def _serialize_event(self, event_type: str, data: Dict[str, Any]) -> str:
        event = {
            'event_type': event_type,
            'timestamp': timezone.now().isoformat(),
            'service': 'maintenance-service',
            'data': data,
        }
        return json.dumps(event, cls=EventEncoder)

    def publish(self, event_type: str, data: Dict[str, Any]) -> bool:
        """Publish an event. Returns False instead of raising on failure."""
        try:
            message = self._serialize_event(event_type, data)
            self.transport(message)
            return True
        except Exception as e:
            logger.error(f"Failed to publish event {event_type}: {e}")
            return False

    # ==========================================================================
    # Audit History
    # ==========================================================================

    def record_change(
        self,
        entity_type: str,
        entity_id,
        action: str,
        changed_by=None,
        changed_by_name: Optional[str] = None,
        changes: Optional[List[Dict[str, Any]]] = None
    ) -> bool:
        """
        Record an audit history entry.

        ``changes`` is a list of ``{'field', 'old_value', 'new_value'}``.
        """
        return self.publish(MaintenanceEventTypes.HISTORY_RECORDED, {
            'entity_type': entity_type,
            'entity_id': entity_id,
            'action': action,
            'changed_by': changed_by,
            'changed_by_name': changed_by_name,
            'changes': changes or [],
        })

    # ==========================================================================
    # Rule Events
    # ==========================================================================

    def rule_created(self, rule, generated: int) -> bool:
        return self.publish(MaintenanceEventTypes.RULE_CREATED, {
            'rule_id': rule.id,
            'name': rule.name,
            'interval_type': rule.interval_type,
            'interval_value': rule.interval_value,
            'next_due_date': rule.next_due_date,
            'work_orders_generated': generated,
        })

    def rule_updated(self, rule, changed_fields: List[str], regenerated: bool) -> bool:
        return self.publish(MaintenanceEventTypes.RULE_UPDATED, {
            'rule_id': rule.id,
            'changed_fields': changed_fields,
            'regenerated': regenerated,
        })

    def rule_deleted(self, rule_id, removed_work_orders: int) -> bool:
        return self.publish(MaintenanceEventTypes.RULE_DELETED, {
            'rule_id': rule_id,
            'removed_work_orders': removed_work_orders,
        })

    def rule_rescheduled(self, rule, previous_due_date, work_order) -> bool:
        return self.publish(MaintenanceEventTypes.RULE_RESCHEDULED, {
            'rule_id': rule.id,
            'previous_due_date': previous_due_date,
            'next_due_date': rule.next_due_date,
            'reschedule_mode': rule.reschedule_mode,
            'work_order_id': work_order.id,
        })

    # ==========================================================================
    # Work Order Events
    # ==========================================================================

    def work_order_created(self, work_order) -> bool:
        return self.publish(MaintenanceEventTypes.WORK_ORDER_CREATED, {
            'work_order_id': work_order.id,
            'work_order_number': work_order.work_order_number,
            'work_order_type': work_order.work_order_type,
            'state': work_order.state,
        })

    def work_orders_materialized(self, rule, work_orders) -> bool:
        return self.publish(MaintenanceEventTypes.WORK_ORDERS_MATERIALIZED, {
            'rule_id': rule.id,
            'work_order_ids': [work_order.id for work_order in work_orders],
            'scheduled_starts': [work_order.scheduled_start for work_order in work_orders],
        })

    def work_order_activated(self, work_order) -> bool:
        return self.publish(MaintenanceEventTypes.WORK_ORDER_ACTIVATED, {
            'work_order_id': work_order.id,
            'work_order_number': work_order.work_order_number,
            'scheduled_start': work_order.scheduled_start,
            'lead_time_days': work_order.lead_time_days,
        })

    def work_order_transitioned(self, work_order, event: str, source: str) -> bool:
        return self.publish(MaintenanceEventTypes.WORK_ORDER_TRANSITIONED, {
            'work_order_id': work_order.id,
            'work_order_number': work_order.work_order_number,
            'event': event,
            'from_state': source,
            'to_state': work_order.state,
            'rule_id': work_order.rule_id,
        })

    def offer_received(self, work_order, offer) -> bool:
        return self.publish(MaintenanceEventTypes.WORK_ORDER_OFFER_RECEIVED, {
            'work_order_id': work_order.id,
            'offer_id': offer.id,
            'company_id': offer.company_id,
            'amount': offer.amount,
        })

    # ==========================================================================
    # Calendar Hold Events
    # ==========================================================================

    def hold_created(self, hold) -> bool:
        return self.publish(MaintenanceEventTypes.HOLD_CREATED, {
            'hold_id': hold.id,
            'plan_id': hold.plan_id,
            'asset_id': hold.asset_id,
            'booking_id': hold.booking_id,
            'start_date': hold.start_date,
            'end_date': hold.end_date,
        })

    def hold_released(self, hold) -> bool:
        return self.publish(MaintenanceEventTypes.HOLD_RELEASED, {
            'hold_id': hold.id,
            'plan_id': hold.plan_id,
            'asset_id': hold.asset_id,
            'booking_id': hold.booking_id,
        })
