# apps/core/services/work_order_service.py
"""
Work Order Service

Drives work orders through their state machines, records history and
manages offers and line items.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from apps.core.events import HistoryActions, MaintenanceEventPublisher
from apps.core.models import WorkOrder, WorkOrderLineItem, WorkOrderOffer
from .actor import Actor, coerce_uuid
from .exceptions import (
    InvalidTransitionError,
    MaintenanceServiceError,
    MaintenanceValidationError,
    RuleRescheduleError,
    WorkOrderNotFoundError,
)
from .rescheduler import CompletionRescheduler
from .results import BatchResult
from .state_machine import SYSTEM_EVENTS, WorkOrderEvent, WorkOrderSnapshot, machine_for

logger = logging.getLogger(__name__)

# Line items can only change while the work is still open
LINE_ITEM_LOCKED_STATES = frozenset({
    WorkOrder.State.SCHEDULED,
    WorkOrder.State.COMPLETED,
    WorkOrder.State.DONE,
    WorkOrder.State.ABORTED,
    WorkOrder.State.OBSOLETE,
})


class WorkOrderService:
    """
    Service for managing work orders.

    Handles:
    - Ad-hoc work order creation
    - Workflow transitions and history
    - Rescheduling the originating rule on completion
    - Offers and line items
    """

    def __init__(
        self,
        rescheduler: CompletionRescheduler = None,
        publisher: MaintenanceEventPublisher = None
    ):
        self.publisher = publisher or MaintenanceEventPublisher()
        self.rescheduler = rescheduler or CompletionRescheduler(publisher=self.publisher)

    # ==========================================================================
    # Work Order CRUD
    # ==========================================================================

    def get_work_order(self, work_order_id) -> WorkOrder:
        try:
            return WorkOrder.objects.get(id=work_order_id)
        except WorkOrder.DoesNotExist:
            raise WorkOrderNotFoundError(f"Work order {work_order_id} not found")

    @transaction.atomic
    def create_work_order(
        self,
        title: str,
        work_order_type: str = WorkOrder.Type.INTERNAL,
        order_type: str = WorkOrder.OrderType.UNPLANNED,
        asset_ids: List[str] = None,
        actor: Actor = None,
        **kwargs
    ) -> WorkOrder:
        """Create an ad-hoc work order in the backlog."""
        actor = actor or Actor.automation()
        if work_order_type not in WorkOrder.Type.values:
            raise MaintenanceValidationError(f"Unknown work order type: {work_order_type}")
        if work_order_type == WorkOrder.Type.INTERNAL and kwargs.get('company_id'):
            raise MaintenanceValidationError('Internal work orders have no maintenance company')

        work_order = WorkOrder.objects.create(
            title=title,
            work_order_type=work_order_type,
            order_type=order_type,
            state=WorkOrder.State.BACKLOG,
            created_by=actor.id,
            created_by_name=actor.name,
            **kwargs
        )

        seen = set()
        line_items = []
        for asset_id in asset_ids or []:
            asset_uuid = coerce_uuid(asset_id)
            if asset_uuid is None:
                raise MaintenanceValidationError(f"Invalid asset id: {asset_id}")
            if asset_uuid in seen:
                continue
            seen.add(asset_uuid)
            line_items.append(WorkOrderLineItem(
                work_order=work_order,
                asset_id=asset_uuid,
                scheduled_date=work_order.scheduled_start,
            ))
        WorkOrderLineItem.objects.bulk_create(line_items)
        work_order.record_state_change(actor.id, actor.name)

        logger.info(f"Created work order {work_order.work_order_number}")
        self.publisher.work_order_created(work_order)
        return work_order

    # ==========================================================================
    # Workflow
    # ==========================================================================

    def transition(
        self,
        work_order_id,
        event,
        payload: Optional[Dict[str, Any]] = None,
        actor: Actor = None,
        now: Optional[datetime] = None
    ) -> WorkOrder:
        """
        Apply a user event to a work order.

        A successful COMPLETE on a rule-generated order also moves the rule's
        next due date. If that fails the completion stays committed and
        RuleRescheduleError is raised.
        """
        try:
            event = WorkOrderEvent(event)
        except ValueError:
            work_order = self.get_work_order(work_order_id)
            raise InvalidTransitionError(work_order.state, str(event), 'unknown event')
        if event in SYSTEM_EVENTS:
            work_order = self.get_work_order(work_order_id)
            raise InvalidTransitionError(work_order.state, event.value, 'raised automatically when an offer arrives')

        work_order = self._apply_event(work_order_id, event, payload, actor, now)

        if event == WorkOrderEvent.COMPLETE and work_order.rule_id:
            try:
                self.rescheduler.reschedule(work_order)
            except (MaintenanceServiceError, DatabaseError) as e:
                logger.error(
                    f"Work order {work_order.work_order_number} completed but rule "
                    f"{work_order.rule_id} was not rescheduled: {e}"
                )
                raise RuleRescheduleError(work_order, work_order.rule_id, e) from e

        return work_order

    def available_transitions(self, work_order_id) -> List[Dict[str, Any]]:
        """Every user event with whether it is currently allowed and why not."""
        work_order = self.get_work_order(work_order_id)
        snapshot = WorkOrderSnapshot.from_work_order(work_order)
        machine = machine_for(work_order.work_order_type)
        available = set(machine.available_events(snapshot))
        return [
            {
                'event': event.value,
                'allowed': event in available,
                'reason': None if event in available else machine.block_reason(snapshot, event),
            }
            for event in machine.transitions
            if event not in SYSTEM_EVENTS
        ]

    # ==========================================================================
    # Offers
    # ==========================================================================

    def receive_offer(
        self,
        work_order_id,
        company_id,
        amount,
        notes: str = None,
        actor: Actor = None
    ) -> WorkOrderOffer:
        """
        Record an offer for an external work order.

        The first offer on a work order waiting for offers moves it to
        ``offer_received``.
        """
        actor = actor or Actor.automation()
        company_uuid = coerce_uuid(company_id)
        if company_uuid is None:
            raise MaintenanceValidationError('Offers need a company')
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, TypeError, ValueError):
            raise MaintenanceValidationError(f"Invalid offer amount: {amount}")
        if amount < 0:
            raise MaintenanceValidationError('Offer amount cannot be negative')

        with transaction.atomic():
            work_order = self._get_for_update(work_order_id)
            if work_order.work_order_type != WorkOrder.Type.EXTERNAL:
                raise MaintenanceValidationError('Only external work orders receive offers')
            if work_order.state not in (WorkOrder.State.OFFER_REQUESTED, WorkOrder.State.OFFER_RECEIVED):
                raise InvalidTransitionError(
                    work_order.state,
                    WorkOrderEvent.OFFER_RECEIVED.value,
                    'offers are only accepted while offers are requested'
                )

            offer = WorkOrderOffer.objects.create(
                work_order=work_order,
                company_id=company_uuid,
                amount=amount,
                notes=notes,
            )
            source = work_order.state
            if work_order.state == WorkOrder.State.OFFER_REQUESTED:
                self._apply_locked(work_order, WorkOrderEvent.OFFER_RECEIVED, {}, actor, timezone.now())

        logger.info(f"Offer {offer.id} of {amount} received for {work_order.work_order_number}")
        self.publisher.offer_received(work_order, offer)
        if source != work_order.state:
            self._publish_transition(work_order, WorkOrderEvent.OFFER_RECEIVED, source, actor)
        return offer

    # ==========================================================================
    # Line Items
    # ==========================================================================

    @transaction.atomic
    def complete_line_item(self, work_order_id, asset_id, actor: Actor = None, notes: str = None) -> WorkOrderLineItem:
        """Mark one asset's maintenance as done."""
        actor = actor or Actor.automation()
        work_order = self._get_for_update(work_order_id)
        self._check_line_items_editable(work_order)
        line_item = self._get_line_item(work_order, asset_id)
        self._set_line_item_status(line_item, WorkOrderLineItem.CompletionStatus.COMPLETED, actor, notes)

        self.publisher.record_change(
            entity_type='asset',
            entity_id=line_item.asset_id,
            action=HistoryActions.MAINTENANCE_PERFORMED,
            changed_by=actor.id,
            changed_by_name=actor.name,
            changes=[{
                'field': 'work_order',
                'old_value': None,
                'new_value': work_order.work_order_number,
            }],
        )
        return line_item

    def update_line_item_statuses(
        self,
        work_order_id,
        asset_ids: List[str],
        completion_status: str,
        actor: Actor = None,
        notes: str = None
    ) -> BatchResult:
        """
        Apply one completion status to many assets.

        Each asset is updated on its own; failures are collected instead of
        stopping the batch.
        """
        actor = actor or Actor.automation()
        if completion_status not in WorkOrderLineItem.CompletionStatus.values:
            raise MaintenanceValidationError(f"Unknown completion status: {completion_status}")

        work_order = self.get_work_order(work_order_id)
        result = BatchResult()
        for asset_id in asset_ids:
            try:
                with transaction.atomic():
                    locked = self._get_for_update(work_order.id)
                    self._check_line_items_editable(locked)
                    line_item = self._get_line_item(locked, asset_id)
                    self._set_line_item_status(line_item, completion_status, actor, notes)
            except (MaintenanceServiceError, DatabaseError) as e:
                logger.warning(f"Line item {asset_id} on {work_order.work_order_number} not updated: {e}")
                result.record_failure(asset_id, e)
            else:
                result.record_success(asset_id)

        logger.info(
            f"Bulk status '{completion_status}' on {work_order.work_order_number}: "
            f"{result.success_count} updated, {result.failure_count} failed"
        )
        return result

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _get_for_update(self, work_order_id) -> WorkOrder:
        try:
            return WorkOrder.objects.select_for_update().get(id=work_order_id)
        except WorkOrder.DoesNotExist:
            raise WorkOrderNotFoundError(f"Work order {work_order_id} not found")

    def _apply_event(self, work_order_id, event, payload, actor, now) -> WorkOrder:
        actor = actor or Actor.automation()
        now = now or timezone.now()
        with transaction.atomic():
            work_order = self._get_for_update(work_order_id)
            source = work_order.state
            self._apply_locked(work_order, event, payload or {}, actor, now)

        logger.info(
            f"Work order {work_order.work_order_number}: {event.value} {source} -> {work_order.state}"
        )
        self._publish_transition(work_order, event, source, actor)
        return work_order

    def _apply_locked(self, work_order, event, payload, actor, now) -> None:
        snapshot = WorkOrderSnapshot.from_work_order(work_order)
        result = machine_for(work_order.work_order_type).transition(snapshot, event, payload, now)

        for field, value in result.changes.items():
            setattr(work_order, field, value)
        work_order.save(update_fields=list(result.changes) + ['updated_at'])
        work_order.record_state_change(actor.id, actor.name, event=event.value, changed_at=now)

    def _publish_transition(self, work_order, event, source, actor) -> None:
        self.publisher.work_order_transitioned(work_order, event.value, source)
        self.publisher.record_change(
            entity_type='work_order',
            entity_id=work_order.id,
            action=HistoryActions.STATUS_CHANGED,
            changed_by=actor.id if actor else None,
            changed_by_name=actor.name if actor else None,
            changes=[{'field': 'state', 'old_value': source, 'new_value': work_order.state}],
        )

    def _check_line_items_editable(self, work_order: WorkOrder) -> None:
        if work_order.state in LINE_ITEM_LOCKED_STATES:
            raise InvalidTransitionError(
                work_order.state,
                'UPDATE_LINE_ITEM',
                'line items cannot change in this state'
            )

    def _get_line_item(self, work_order: WorkOrder, asset_id) -> WorkOrderLineItem:
        asset_uuid = coerce_uuid(asset_id)
        line_item = (
            work_order.line_items.filter(asset_id=asset_uuid).first()
            if asset_uuid else None
        )
        if line_item is None:
            raise MaintenanceValidationError(
                f"Asset {asset_id} is not part of work order {work_order.work_order_number}"
            )
        return line_item

    def _set_line_item_status(self, line_item, completion_status, actor, notes) -> None:
        completed = completion_status == WorkOrderLineItem.CompletionStatus.COMPLETED
        line_item.completion_status = completion_status
        line_item.completed_at = timezone.now() if completed else None
        line_item.completed_by = actor.id if completed else None
        line_item.completed_by_name = actor.name if completed else None
        if notes is not None:
            line_item.notes = notes
        line_item.save()
