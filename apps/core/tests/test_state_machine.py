# apps/core/tests/test_state_machine.py
"""
Tests for the internal and external work order state machines
"""

import uuid
from datetime import date, datetime, timezone as dt_timezone

import pytest

from apps.core.models import WorkOrder
from apps.core.services import InvalidTransitionError, WorkOrderEvent, machine_for
from apps.core.services.state_machine import (
    ExternalWorkOrderMachine,
    InternalWorkOrderMachine,
    WorkOrderSnapshot,
)

State = WorkOrder.State
NOW = datetime(2025, 3, 1, 9, 0, tzinfo=dt_timezone.utc)


def internal(state, **kwargs):
    return WorkOrderSnapshot(state=state, work_order_type=WorkOrder.Type.INTERNAL, **kwargs)


def external(state, **kwargs):
    return WorkOrderSnapshot(state=state, work_order_type=WorkOrder.Type.EXTERNAL, **kwargs)


def full_payload():
    return {
        'assigned_to': uuid.uuid4(),
        'scheduled_start': date(2025, 3, 3),
        'company_id': None,
    }


class TestInternalMachine:

    machine = InternalWorkOrderMachine()

    def test_happy_path(self):
        """Test backlog through done with the effect of each step."""
        technician = uuid.uuid4()

        result = self.machine.transition(internal(State.BACKLOG), WorkOrderEvent.ASSIGN, {
            'assigned_to': technician,
            'assigned_to_name': 'Kari',
        })
        assert result.target == State.ASSIGNED
        assert result.changes['assigned_to'] == technician

        result = self.machine.transition(internal(State.ASSIGNED), 'PLAN', {
            'scheduled_start': date(2025, 3, 3),
            'scheduled_end': date(2025, 3, 4),
        })
        assert result.changes == {
            'state': State.PLANNED,
            'scheduled_start': date(2025, 3, 3),
            'scheduled_end': date(2025, 3, 4),
        }

        result = self.machine.transition(internal(State.PLANNED), 'START', now=NOW)
        assert result.changes['actual_start'] == NOW

        snapshot = internal(State.IN_PROGRESS, line_item_statuses=('completed', 'completed'))
        result = self.machine.transition(snapshot, 'COMPLETE', now=NOW)
        assert result.changes == {'state': State.COMPLETED, 'actual_end': NOW}

        snapshot = internal(State.COMPLETED, approval_responsible_id=str(uuid.uuid4()))
        assert self.machine.transition(snapshot, 'APPROVE').target == State.DONE

    def test_assign_requires_assignee(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            self.machine.transition(internal(State.BACKLOG), 'ASSIGN', {})
        assert exc_info.value.state == State.BACKLOG
        assert exc_info.value.event == 'ASSIGN'

    def test_plan_requires_start(self):
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(internal(State.ASSIGNED), 'PLAN', {'scheduled_end': date(2025, 3, 4)})

    def test_complete_blocked_by_pending_line_items(self):
        """Test completion needs every line item completed."""
        snapshot = internal(State.IN_PROGRESS, line_item_statuses=('completed', 'pending'))
        with pytest.raises(InvalidTransitionError) as exc_info:
            self.machine.transition(snapshot, 'COMPLETE')
        assert '1 line item' in exc_info.value.reason

    def test_complete_uses_payload_end(self):
        actual_end = datetime(2025, 2, 10, 12, 0, tzinfo=dt_timezone.utc)
        result = self.machine.transition(internal(State.IN_PROGRESS), 'COMPLETE', {'actual_end': actual_end}, now=NOW)
        assert result.changes['actual_end'] == actual_end

    def test_approve_requires_responsible(self):
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(internal(State.COMPLETED), 'APPROVE')

    def test_reopen_clears_actual_end(self):
        result = self.machine.transition(internal(State.COMPLETED), 'REOPEN')
        assert result.changes == {'state': State.IN_PROGRESS, 'actual_end': None}

    @pytest.mark.parametrize('state', [State.BACKLOG, State.ASSIGNED, State.PLANNED, State.IN_PROGRESS])
    def test_abort_from_open_states(self, state):
        assert self.machine.transition(internal(state), 'ABORT').target == State.ABORTED

    @pytest.mark.parametrize('state', [State.COMPLETED, State.DONE, State.ABORTED, State.OBSOLETE])
    def test_abort_blocked_once_closed(self, state):
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(internal(state), 'ABORT')

    def test_mark_obsolete_not_from_in_progress(self):
        assert self.machine.transition(internal(State.PLANNED), 'MARK_OBSOLETE').target == State.OBSOLETE
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(internal(State.IN_PROGRESS), 'MARK_OBSOLETE')

    def test_offer_events_not_available(self):
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(internal(State.BACKLOG), 'REQUEST_OFFER', {'company_id': uuid.uuid4()})

    def test_available_events_from_backlog(self):
        events = self.machine.available_events(internal(State.BACKLOG))
        assert set(events) == {WorkOrderEvent.ASSIGN, WorkOrderEvent.ABORT, WorkOrderEvent.MARK_OBSOLETE}


class TestExternalMachine:

    machine = ExternalWorkOrderMachine()

    def test_offer_flow(self):
        company = uuid.uuid4()

        result = self.machine.transition(external(State.BACKLOG), 'REQUEST_OFFER', {'company_id': company})
        assert result.changes == {'state': State.OFFER_REQUESTED, 'company_id': company}

        snapshot = external(State.OFFER_REQUESTED, offer_company_ids=(str(company),))
        assert self.machine.transition(snapshot, 'OFFER_RECEIVED').target == State.OFFER_RECEIVED

        snapshot = external(State.OFFER_RECEIVED, offer_company_ids=(str(company),))
        result = self.machine.transition(snapshot, 'PLAN', {
            'scheduled_start': date(2025, 4, 1),
            'company_id': company,
        })
        assert result.target == State.PLANNED
        assert result.changes['company_id'] == company

    def test_request_offer_requires_company(self):
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(external(State.BACKLOG), 'REQUEST_OFFER', {})

    def test_offer_received_requires_an_offer(self):
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(external(State.OFFER_REQUESTED), 'OFFER_RECEIVED')

    def test_plan_rejects_company_without_offer(self):
        """Test the accepted company must be one that sent an offer."""
        snapshot = external(State.OFFER_RECEIVED, offer_company_ids=(str(uuid.uuid4()),))
        with pytest.raises(InvalidTransitionError) as exc_info:
            self.machine.transition(snapshot, 'PLAN', {
                'scheduled_start': date(2025, 4, 1),
                'company_id': uuid.uuid4(),
            })
        assert 'No offer received' in exc_info.value.reason

    def test_request_more_offers(self):
        snapshot = external(State.OFFER_RECEIVED, offer_company_ids=('a',))
        assert self.machine.transition(snapshot, 'REQUEST_MORE_OFFERS').target == State.OFFER_REQUESTED

    def test_assign_not_available(self):
        with pytest.raises(InvalidTransitionError):
            self.machine.transition(external(State.BACKLOG), 'ASSIGN', {'assigned_to': uuid.uuid4()})


class TestMachineTotality:

    @pytest.mark.parametrize('work_order_type', [WorkOrder.Type.INTERNAL, WorkOrder.Type.EXTERNAL])
    def test_every_state_and_event_has_an_answer(self, work_order_type):
        """Test each (state, event) pair either transitions or raises InvalidTransitionError."""
        machine = machine_for(work_order_type)
        for state in State.values:
            snapshot = WorkOrderSnapshot(
                state=state,
                work_order_type=work_order_type,
                line_item_statuses=('completed',),
                offer_company_ids=('company',),
                approval_responsible_id='responsible',
            )
            for event in WorkOrderEvent:
                try:
                    result = machine.transition(snapshot, event, full_payload(), NOW)
                except InvalidTransitionError as e:
                    assert e.state == state
                    assert e.event == event.value
                else:
                    assert result.source == state
                    assert result.target in machine.states

    @pytest.mark.parametrize('work_order_type', [WorkOrder.Type.INTERNAL, WorkOrder.Type.EXTERNAL])
    def test_scheduled_rejects_every_event(self, work_order_type):
        """Test scheduled orders only leave through the activation sweep."""
        machine = machine_for(work_order_type)
        snapshot = WorkOrderSnapshot(state=State.SCHEDULED, work_order_type=work_order_type)
        for event in WorkOrderEvent:
            with pytest.raises(InvalidTransitionError):
                machine.transition(snapshot, event, full_payload(), NOW)
        assert machine.available_events(snapshot) == []

    def test_unknown_event(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine_for('internal').transition(internal(State.BACKLOG), 'EXPLODE')
        assert exc_info.value.reason == 'unknown event'

    def test_wrong_machine_for_type(self):
        with pytest.raises(InvalidTransitionError):
            machine_for('internal').transition(external(State.BACKLOG), 'ABORT')

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            machine_for('contractor')

    def test_block_reason_and_can_transition(self):
        machine = machine_for('internal')
        assert machine.can_transition(internal(State.PLANNED), 'START')
        assert not machine.can_transition(internal(State.BACKLOG), 'START')
        assert machine.block_reason(internal('backlog'), 'START') == "START is not allowed from 'backlog'"
        assert machine.is_terminal(State.DONE)
        assert not machine.is_terminal(State.COMPLETED)
