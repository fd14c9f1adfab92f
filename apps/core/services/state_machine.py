# apps/core/services/state_machine.py
"""
Work Order State Machines

Internal and external work orders share one event vocabulary but each kind
has its own transition table. A machine only evaluates an immutable
snapshot and returns the changes to persist; it never touches the database.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

from django.utils import timezone

from apps.core.models import WorkOrder, WorkOrderLineItem
from .exceptions import InvalidTransitionError

State = WorkOrder.State


class WorkOrderEvent(str, Enum):
    ASSIGN = 'ASSIGN'
    PLAN = 'PLAN'
    START = 'START'
    COMPLETE = 'COMPLETE'
    APPROVE = 'APPROVE'
    REOPEN = 'REOPEN'
    ABORT = 'ABORT'
    MARK_OBSOLETE = 'MARK_OBSOLETE'
    REQUEST_OFFER = 'REQUEST_OFFER'
    REQUEST_MORE_OFFERS = 'REQUEST_MORE_OFFERS'
    # Raised by offer arrival, never by a user
    OFFER_RECEIVED = 'OFFER_RECEIVED'


SYSTEM_EVENTS = frozenset({WorkOrderEvent.OFFER_RECEIVED})
TERMINAL_STATES = frozenset({State.DONE, State.ABORTED, State.OBSOLETE})
NOT_ABORTABLE_STATES = frozenset({State.COMPLETED, State.DONE, State.ABORTED, State.OBSOLETE})
OBSOLETABLE_STATES = frozenset({
    State.BACKLOG,
    State.ASSIGNED,
    State.PLANNED,
    State.OFFER_REQUESTED,
    State.OFFER_RECEIVED,
})


@dataclass(frozen=True)
class WorkOrderSnapshot:
    """What the machines need to know about a work order."""
    state: str
    work_order_type: str
    line_item_statuses: Tuple[str, ...] = ()
    offer_company_ids: Tuple[str, ...] = ()
    approval_responsible_id: Optional[str] = None

    @classmethod
    def from_work_order(cls, work_order: WorkOrder) -> 'WorkOrderSnapshot':
        return cls(
            state=work_order.state,
            work_order_type=work_order.work_order_type,
            line_item_statuses=tuple(
                work_order.line_items.values_list('completion_status', flat=True)
            ),
            offer_company_ids=tuple(
                str(company_id)
                for company_id in work_order.offers.values_list('company_id', flat=True)
            ),
            approval_responsible_id=(
                str(work_order.approval_responsible_id)
                if work_order.approval_responsible_id else None
            ),
        )

    @property
    def offer_count(self) -> int:
        return len(self.offer_company_ids)


@dataclass(frozen=True)
class TransitionResult:
    event: WorkOrderEvent
    source: str
    target: str
    changes: Dict[str, Any] = field(default_factory=dict)


Guard = Callable[[WorkOrderSnapshot, Optional[Mapping[str, Any]]], Optional[str]]
Effect = Callable[[WorkOrderSnapshot, Mapping[str, Any], datetime], Dict[str, Any]]


@dataclass(frozen=True)
class Transition:
    sources: FrozenSet[str]
    target: str
    # Guards return a block reason, or None when the transition may proceed.
    # They receive payload=None when only the snapshot is being evaluated.
    guards: Tuple[Guard, ...] = ()
    effect: Optional[Effect] = None


# =============================================================================
# GUARDS
# =============================================================================

def _requires(key: str, label: str) -> Guard:
    def guard(snapshot, payload):
        if payload is not None and not payload.get(key):
            return f"{label} is required"
        return None
    return guard


def _all_line_items_completed(snapshot, payload):
    pending = [
        status for status in snapshot.line_item_statuses
        if status != WorkOrderLineItem.CompletionStatus.COMPLETED
    ]
    if pending:
        return f"{len(pending)} line item(s) are not completed"
    return None


def _approval_responsible_set(snapshot, payload):
    if not snapshot.approval_responsible_id:
        return 'No approval responsible is set'
    return None


def _has_offer(snapshot, payload):
    if snapshot.offer_count == 0:
        return 'At least one offer is required'
    return None


def _accepted_company_has_offer(snapshot, payload):
    company_id = payload.get('company_id') if payload else None
    if company_id and str(company_id) not in snapshot.offer_company_ids:
        return f"No offer received from company {company_id}"
    return None


# =============================================================================
# EFFECTS
# =============================================================================

def _assign(snapshot, payload, now):
    return {
        'assigned_to': payload['assigned_to'],
        'assigned_to_name': payload.get('assigned_to_name'),
    }


def _plan(snapshot, payload, now):
    changes = {'scheduled_start': payload['scheduled_start']}
    if payload.get('scheduled_end'):
        changes['scheduled_end'] = payload['scheduled_end']
    if payload.get('company_id'):
        changes['company_id'] = payload['company_id']
    return changes


def _start(snapshot, payload, now):
    return {'actual_start': now}


def _complete(snapshot, payload, now):
    return {'actual_end': payload.get('actual_end') or now}


def _reopen(snapshot, payload, now):
    return {'actual_end': None}


def _request_offer(snapshot, payload, now):
    return {'company_id': payload['company_id']}


# =============================================================================
# MACHINES
# =============================================================================

class WorkOrderStateMachine:
    """Evaluates events against one work order kind's transition table."""

    work_order_type: str = ''
    states: FrozenSet[str] = frozenset()
    transitions: Dict[WorkOrderEvent, Transition] = {}

    def transition(
        self,
        snapshot: WorkOrderSnapshot,
        event,
        payload: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> TransitionResult:
        """
        Compute the outcome of ``event``.

        Raises InvalidTransitionError naming the current state and the event
        when the edge does not exist or a guard fails.
        """
        event = self._coerce_event(snapshot, event)
        payload = payload or {}
        reason = self._block_reason(snapshot, event, payload)
        if reason:
            raise InvalidTransitionError(snapshot.state, event.value, reason)

        transition = self.transitions[event]
        changes = {'state': transition.target}
        if transition.effect:
            changes.update(transition.effect(snapshot, payload, now or timezone.now()))

        return TransitionResult(
            event=event,
            source=snapshot.state,
            target=transition.target,
            changes=changes,
        )

    def block_reason(
        self,
        snapshot: WorkOrderSnapshot,
        event,
        payload: Optional[Mapping[str, Any]] = None
    ) -> Optional[str]:
        """Why ``event`` cannot be applied right now, or None if it can."""
        try:
            event = WorkOrderEvent(event)
        except ValueError:
            return f"Unknown event {event}"
        return self._block_reason(snapshot, event, payload)

    def can_transition(self, snapshot: WorkOrderSnapshot, event) -> bool:
        return self.block_reason(snapshot, event) is None

    def available_events(self, snapshot: WorkOrderSnapshot) -> List[WorkOrderEvent]:
        """User events whose edge exists and whose guards pass."""
        return [
            event for event in self.transitions
            if event not in SYSTEM_EVENTS and self._block_reason(snapshot, event, None) is None
        ]

    def is_terminal(self, state: str) -> bool:
        return state in TERMINAL_STATES

    def _coerce_event(self, snapshot, event) -> WorkOrderEvent:
        try:
            return WorkOrderEvent(event)
        except ValueError:
            raise InvalidTransitionError(snapshot.state, str(event), 'unknown event')

    def _block_reason(self, snapshot, event, payload) -> Optional[str]:
        if snapshot.work_order_type != self.work_order_type:
            return f"{snapshot.work_order_type} work orders are not handled by the {self.work_order_type} machine"
        if snapshot.state not in self.states:
            return f"'{snapshot.state}' is not a {self.work_order_type} work order state"

        transition = self.transitions.get(event)
        if transition is None:
            return f"{event.value} is not available for {self.work_order_type} work orders"
        if snapshot.state not in transition.sources:
            return f"{event.value} is not allowed from '{snapshot.state}'"

        for guard in transition.guards:
            reason = guard(snapshot, payload)
            if reason:
                return reason
        return None


class InternalWorkOrderMachine(WorkOrderStateMachine):
    """backlog -> assigned -> planned -> in_progress -> completed -> done"""

    work_order_type = WorkOrder.Type.INTERNAL
    states = frozenset({
        State.BACKLOG,
        State.ASSIGNED,
        State.PLANNED,
        State.IN_PROGRESS,
        State.COMPLETED,
        State.DONE,
        State.ABORTED,
        State.OBSOLETE,
    })
    transitions = {
        WorkOrderEvent.ASSIGN: Transition(
            sources=frozenset({State.BACKLOG}),
            target=State.ASSIGNED,
            guards=(_requires('assigned_to', 'Assignee'),),
            effect=_assign,
        ),
        WorkOrderEvent.PLAN: Transition(
            sources=frozenset({State.ASSIGNED}),
            target=State.PLANNED,
            guards=(_requires('scheduled_start', 'Scheduled start'),),
            effect=_plan,
        ),
        WorkOrderEvent.START: Transition(
            sources=frozenset({State.PLANNED}),
            target=State.IN_PROGRESS,
            effect=_start,
        ),
        WorkOrderEvent.COMPLETE: Transition(
            sources=frozenset({State.IN_PROGRESS}),
            target=State.COMPLETED,
            guards=(_all_line_items_completed,),
            effect=_complete,
        ),
        WorkOrderEvent.APPROVE: Transition(
            sources=frozenset({State.COMPLETED}),
            target=State.DONE,
            guards=(_approval_responsible_set,),
        ),
        WorkOrderEvent.REOPEN: Transition(
            sources=frozenset({State.COMPLETED}),
            target=State.IN_PROGRESS,
            effect=_reopen,
        ),
        WorkOrderEvent.ABORT: Transition(
            sources=states - NOT_ABORTABLE_STATES,
            target=State.ABORTED,
        ),
        WorkOrderEvent.MARK_OBSOLETE: Transition(
            sources=states & OBSOLETABLE_STATES,
            target=State.OBSOLETE,
        ),
    }


class ExternalWorkOrderMachine(WorkOrderStateMachine):
    """backlog -> offer_requested -> offer_received -> planned -> in_progress -> completed -> done"""

    work_order_type = WorkOrder.Type.EXTERNAL
    states = frozenset({
        State.BACKLOG,
        State.OFFER_REQUESTED,
        State.OFFER_RECEIVED,
        State.PLANNED,
        State.IN_PROGRESS,
        State.COMPLETED,
        State.DONE,
        State.ABORTED,
        State.OBSOLETE,
    })
    transitions = {
        WorkOrderEvent.REQUEST_OFFER: Transition(
            sources=frozenset({State.BACKLOG}),
            target=State.OFFER_REQUESTED,
            guards=(_requires('company_id', 'Company'),),
            effect=_request_offer,
        ),
        WorkOrderEvent.OFFER_RECEIVED: Transition(
            sources=frozenset({State.OFFER_REQUESTED}),
            target=State.OFFER_RECEIVED,
            guards=(_has_offer,),
        ),
        WorkOrderEvent.REQUEST_MORE_OFFERS: Transition(
            sources=frozenset({State.OFFER_RECEIVED}),
            target=State.OFFER_REQUESTED,
        ),
        WorkOrderEvent.PLAN: Transition(
            sources=frozenset({State.OFFER_RECEIVED}),
            target=State.PLANNED,
            guards=(
                _requires('scheduled_start', 'Scheduled start'),
                _has_offer,
                _accepted_company_has_offer,
            ),
            effect=_plan,
        ),
        WorkOrderEvent.START: Transition(
            sources=frozenset({State.PLANNED}),
            target=State.IN_PROGRESS,
            effect=_start,
        ),
        WorkOrderEvent.COMPLETE: Transition(
            sources=frozenset({State.IN_PROGRESS}),
            target=State.COMPLETED,
            guards=(_all_line_items_completed,),
            effect=_complete,
        ),
        WorkOrderEvent.APPROVE: Transition(
            sources=frozenset({State.COMPLETED}),
            target=State.DONE,
            guards=(_approval_responsible_set,),
        ),
        WorkOrderEvent.REOPEN: Transition(
            sources=frozenset({State.COMPLETED}),
            target=State.IN_PROGRESS,
            effect=_reopen,
        ),
        WorkOrderEvent.ABORT: Transition(
            sources=states - NOT_ABORTABLE_STATES,
            target=State.ABORTED,
        ),
        WorkOrderEvent.MARK_OBSOLETE: Transition(
            sources=states & OBSOLETABLE_STATES,
            target=State.OBSOLETE,
        ),
    }


_MACHINES = {
    WorkOrder.Type.INTERNAL: InternalWorkOrderMachine(),
    WorkOrder.Type.EXTERNAL: ExternalWorkOrderMachine(),
}


def machine_for(work_order_type: str) -> WorkOrderStateMachine:
    """State machine for a work order kind."""
    try:
        return _MACHINES[work_order_type]
    except KeyError:
        raise ValueError(f"Unknown work order type: {work_order_type}")
