# apps/core/tests/test_work_order_service.py
"""
Tests for work order workflow, offers and line items
"""

import re
import uuid
from datetime import date
from decimal import Decimal

import pytest

from apps.core.events import MaintenanceEventTypes
from apps.core.models import MaintenanceRule, WorkOrder, format_work_order_number, next_work_order_number
from apps.core.services import (
    InvalidTransitionError,
    MaintenanceValidationError,
    RuleRescheduleError,
    WorkOrderActivationService,
    WorkOrderNotFoundError,
)


def first_rule_order(rule):
    return WorkOrder.objects.filter(rule_id=rule.id).order_by('scheduled_start').first()


def bring_to_in_progress(service, work_order, actor):
    """Activate, assign, plan and start an internal order."""
    WorkOrder.objects.filter(id=work_order.id, state=WorkOrder.State.SCHEDULED).update(state=WorkOrder.State.BACKLOG)
    service.transition(work_order.id, 'ASSIGN', {'assigned_to': actor.id, 'assigned_to_name': actor.name}, actor)
    service.transition(work_order.id, 'PLAN', {'scheduled_start': work_order.scheduled_start or date(2025, 3, 1)}, actor)
    return service.transition(work_order.id, 'START', actor=actor)


def complete_all_line_items(service, work_order, actor):
    for line_item in work_order.line_items.all():
        service.complete_line_item(work_order.id, line_item.asset_id, actor=actor)


@pytest.mark.django_db
class TestCreateWorkOrder:

    def test_create_ad_hoc(self, work_order_service, actor, asset_ids, transport):
        work_order = work_order_service.create_work_order(
            title='Broken hinge',
            asset_ids=asset_ids + [asset_ids[0]],
            actor=actor,
            scheduled_start=date(2025, 3, 1),
        )

        assert work_order.state == WorkOrder.State.BACKLOG
        assert work_order.order_type == WorkOrder.OrderType.UNPLANNED
        assert work_order.line_items.count() == 2
        assert work_order.history.get().state == WorkOrder.State.BACKLOG
        assert re.match(r'^WO-\d{8}-\d{4}$', work_order.work_order_number)
        assert MaintenanceEventTypes.WORK_ORDER_CREATED in transport.event_types

    def test_internal_order_rejects_company(self, work_order_service):
        with pytest.raises(MaintenanceValidationError):
            work_order_service.create_work_order(title='x', company_id=uuid.uuid4())

    def test_invalid_asset_id(self, work_order_service):
        with pytest.raises(MaintenanceValidationError):
            work_order_service.create_work_order(title='x', asset_ids=['not-a-uuid'])

    def test_unknown_work_order(self, work_order_service):
        with pytest.raises(WorkOrderNotFoundError):
            work_order_service.get_work_order(uuid.uuid4())


@pytest.mark.django_db
class TestWorkOrderNumbers:

    def test_format(self):
        assert format_work_order_number(date(2025, 3, 1), 7) == 'WO-20250301-0007'

    def test_sequence_continues_from_highest(self):
        """Test a gap in the sequence never leads to a reused number."""
        WorkOrder.objects.create(work_order_number='WO-20250301-0001')
        WorkOrder.objects.create(work_order_number='WO-20250301-0005')
        WorkOrder.objects.create(work_order_number='WO-20250302-0009')

        assert next_work_order_number(date(2025, 3, 1)) == 'WO-20250301-0006'
        assert next_work_order_number(date(2025, 3, 3)) == 'WO-20250303-0001'

    def test_numbers_unique_per_day(self, work_order_service):
        numbers = {work_order_service.create_work_order(title=f'Order {n}').work_order_number for n in range(3)}
        assert len(numbers) == 3


@pytest.mark.django_db
class TestTransitions:

    def test_internal_workflow_records_history(self, work_order_service, rule_service, rule_data, actor, transport):
        rule = rule_service.create_rule(rule_data)
        work_order = first_rule_order(rule)

        bring_to_in_progress(work_order_service, work_order, actor)
        work_order.refresh_from_db()

        assert work_order.state == WorkOrder.State.IN_PROGRESS
        assert work_order.assigned_to == actor.id
        assert work_order.actual_start is not None
        history = list(work_order.history.values_list('sequence', 'state', 'event'))
        assert history == [
            (1, 'scheduled', None),
            (2, 'assigned', 'ASSIGN'),
            (3, 'planned', 'PLAN'),
            (4, 'in_progress', 'START'),
        ]
        assert MaintenanceEventTypes.WORK_ORDER_TRANSITIONED in transport.event_types
        assert MaintenanceEventTypes.HISTORY_RECORDED in transport.event_types

    def test_scheduled_order_cannot_transition(self, work_order_service, rule_service, rule_data, actor):
        work_order = first_rule_order(rule_service.create_rule(rule_data))

        with pytest.raises(InvalidTransitionError):
            work_order_service.transition(work_order.id, 'ASSIGN', {'assigned_to': actor.id})

    def test_rejected_transition_changes_nothing(self, work_order_service):
        work_order = work_order_service.create_work_order(title='x')

        with pytest.raises(InvalidTransitionError):
            work_order_service.transition(work_order.id, 'START')

        work_order.refresh_from_db()
        assert work_order.state == WorkOrder.State.BACKLOG
        assert work_order.history.count() == 1

    def test_unknown_event(self, work_order_service):
        work_order = work_order_service.create_work_order(title='x')
        with pytest.raises(InvalidTransitionError):
            work_order_service.transition(work_order.id, 'TELEPORT')

    def test_offer_received_not_user_triggered(self, work_order_service):
        work_order = work_order_service.create_work_order(title='x', work_order_type='external')
        with pytest.raises(InvalidTransitionError):
            work_order_service.transition(work_order.id, 'OFFER_RECEIVED')

    def test_complete_requires_line_items(self, work_order_service, rule_service, rule_data, actor):
        work_order = first_rule_order(rule_service.create_rule(rule_data))
        bring_to_in_progress(work_order_service, work_order, actor)

        with pytest.raises(InvalidTransitionError):
            work_order_service.transition(work_order.id, 'COMPLETE', actor=actor)

    def test_available_transitions(self, work_order_service):
        work_order = work_order_service.create_work_order(title='x')

        available = {entry['event']: entry for entry in work_order_service.available_transitions(work_order.id)}

        assert available['ASSIGN']['allowed']
        assert not available['START']['allowed']
        assert available['START']['reason'] == "START is not allowed from 'backlog'"
        assert 'OFFER_RECEIVED' not in available


@pytest.mark.django_db
class TestCompletionRescheduling:

    def test_actual_completion_anchors_on_completion_day(
        self, work_order_service, rule_service, rule_data, actor, moment, transport
    ):
        """Test a monthly rule completed on Feb 10 is next due Mar 10."""
        rule = rule_service.create_rule(rule_data)
        work_order = first_rule_order(rule)
        bring_to_in_progress(work_order_service, work_order, actor)
        complete_all_line_items(work_order_service, work_order, actor)

        work_order = work_order_service.transition(work_order.id, 'COMPLETE', actor=actor, now=moment(2025, 2, 10))

        assert work_order.state == WorkOrder.State.COMPLETED
        rule.refresh_from_db()
        assert rule.next_due_date == date(2025, 3, 10)
        assert MaintenanceEventTypes.RULE_RESCHEDULED in transport.event_types

    def test_replan_once_keeps_cadence(self, work_order_service, rule_service, rule_data, actor, moment):
        rule = rule_service.create_rule({
            **rule_data,
            'reschedule_mode': 'replan_once',
            'next_due_date': date(2025, 2, 1),
        })
        work_order = first_rule_order(rule)
        bring_to_in_progress(work_order_service, work_order, actor)
        complete_all_line_items(work_order_service, work_order, actor)

        work_order_service.transition(work_order.id, 'COMPLETE', actor=actor, now=moment(2025, 2, 20))

        rule.refresh_from_db()
        assert rule.next_due_date == date(2025, 3, 1)

    def test_usage_rule_left_unchanged(self, work_order_service, rule_service, rule_data, actor, moment):
        rule = rule_service.create_rule({**rule_data, 'interval_type': 'uses', 'interval_value': 100})
        work_order = rule_service.create_work_order_from_rule(rule.id, actor=actor)
        bring_to_in_progress(work_order_service, work_order, actor)
        complete_all_line_items(work_order_service, work_order, actor)

        work_order_service.transition(work_order.id, 'COMPLETE', actor=actor, now=moment(2025, 2, 20))

        rule.refresh_from_db()
        assert rule.next_due_date == date(2025, 1, 10)

    def test_failed_reschedule_keeps_completion(self, work_order_service, rule_service, rule_data, actor):
        """Test completion stays committed when the rule cannot be rescheduled."""
        rule = rule_service.create_rule(rule_data)
        work_order = first_rule_order(rule)
        bring_to_in_progress(work_order_service, work_order, actor)
        complete_all_line_items(work_order_service, work_order, actor)
        MaintenanceRule.objects.filter(id=rule.id).delete()

        with pytest.raises(RuleRescheduleError) as exc_info:
            work_order_service.transition(work_order.id, 'COMPLETE', actor=actor)

        assert exc_info.value.rule_id == rule.id
        work_order.refresh_from_db()
        assert work_order.state == WorkOrder.State.COMPLETED

    def test_reopen_and_approve(self, work_order_service, actor, asset_ids):
        work_order = work_order_service.create_work_order(
            title='x',
            asset_ids=asset_ids[:1],
            approval_responsible_id=uuid.uuid4(),
        )
        bring_to_in_progress(work_order_service, work_order, actor)
        complete_all_line_items(work_order_service, work_order, actor)
        work_order_service.transition(work_order.id, 'COMPLETE', actor=actor)

        work_order = work_order_service.transition(work_order.id, 'REOPEN', actor=actor)
        assert work_order.actual_end is None

        work_order_service.transition(work_order.id, 'COMPLETE', actor=actor)
        work_order = work_order_service.transition(work_order.id, 'APPROVE', actor=actor)
        assert work_order.state == WorkOrder.State.DONE


@pytest.mark.django_db
class TestOffers:

    def external_order(self, service, company):
        work_order = service.create_work_order(title='Calibrate', work_order_type='external')
        service.transition(work_order.id, 'REQUEST_OFFER', {'company_id': company})
        return work_order

    def test_first_offer_moves_to_offer_received(self, work_order_service, transport):
        company = uuid.uuid4()
        work_order = self.external_order(work_order_service, company)

        offer = work_order_service.receive_offer(work_order.id, company, '1250.50', notes='incl. travel')

        assert offer.amount == Decimal('1250.50')
        work_order.refresh_from_db()
        assert work_order.state == WorkOrder.State.OFFER_RECEIVED
        assert work_order.history.order_by('-sequence').first().event == 'OFFER_RECEIVED'
        assert MaintenanceEventTypes.WORK_ORDER_OFFER_RECEIVED in transport.event_types

        work_order_service.receive_offer(work_order.id, uuid.uuid4(), 990)
        work_order.refresh_from_db()
        assert work_order.state == WorkOrder.State.OFFER_RECEIVED
        assert work_order.offers.count() == 2

    def test_plan_with_accepted_offer(self, work_order_service):
        company = uuid.uuid4()
        work_order = self.external_order(work_order_service, company)
        work_order_service.receive_offer(work_order.id, company, 100)

        work_order = work_order_service.transition(work_order.id, 'PLAN', {
            'scheduled_start': date(2025, 5, 1),
            'company_id': company,
        })

        assert work_order.state == WorkOrder.State.PLANNED
        assert work_order.company_id == company

    def test_negative_amount_rejected(self, work_order_service):
        company = uuid.uuid4()
        work_order = self.external_order(work_order_service, company)

        with pytest.raises(MaintenanceValidationError):
            work_order_service.receive_offer(work_order.id, company, '-1')
        with pytest.raises(MaintenanceValidationError):
            work_order_service.receive_offer(work_order.id, company, 'lots')

    def test_offer_outside_offer_states(self, work_order_service):
        work_order = work_order_service.create_work_order(title='x', work_order_type='external')
        with pytest.raises(InvalidTransitionError):
            work_order_service.receive_offer(work_order.id, uuid.uuid4(), 10)

    def test_internal_orders_take_no_offers(self, work_order_service):
        work_order = work_order_service.create_work_order(title='x')
        with pytest.raises(MaintenanceValidationError):
            work_order_service.receive_offer(work_order.id, uuid.uuid4(), 10)


@pytest.mark.django_db
class TestLineItems:

    def test_complete_line_item(self, work_order_service, actor, asset_ids, transport):
        work_order = work_order_service.create_work_order(title='x', asset_ids=asset_ids)

        line_item = work_order_service.complete_line_item(work_order.id, asset_ids[0], actor=actor, notes='ok')

        assert line_item.completion_status == 'completed'
        assert line_item.completed_by == actor.id
        assert line_item.completed_at is not None
        assert line_item.notes == 'ok'
        assert MaintenanceEventTypes.HISTORY_RECORDED in transport.event_types

    def test_line_items_locked_while_scheduled(self, work_order_service, rule_service, rule_data, asset_ids):
        work_order = first_rule_order(rule_service.create_rule(rule_data))
        with pytest.raises(InvalidTransitionError):
            work_order_service.complete_line_item(work_order.id, asset_ids[0])

    def test_bulk_status_collects_failures(self, work_order_service, actor, asset_ids):
        """Test one bad asset does not stop the rest of the batch."""
        work_order = work_order_service.create_work_order(title='x', asset_ids=asset_ids)
        stranger = str(uuid.uuid4())

        result = work_order_service.update_line_item_statuses(
            work_order.id,
            [asset_ids[0], stranger, 'garbage', asset_ids[1]],
            'in_progress',
            actor=actor,
        )

        assert result.succeeded == asset_ids
        assert [failure.item_id for failure in result.failures] == [stranger, 'garbage']
        assert set(work_order.line_items.values_list('completion_status', flat=True)) == {'in_progress'}

    def test_bulk_status_rejects_unknown_status(self, work_order_service, asset_ids):
        work_order = work_order_service.create_work_order(title='x', asset_ids=asset_ids)
        with pytest.raises(MaintenanceValidationError):
            work_order_service.update_line_item_statuses(work_order.id, asset_ids, 'skipped')

    def test_reverting_clears_completion(self, work_order_service, actor, asset_ids):
        work_order = work_order_service.create_work_order(title='x', asset_ids=asset_ids[:1])
        work_order_service.complete_line_item(work_order.id, asset_ids[0], actor=actor)

        work_order_service.update_line_item_statuses(work_order.id, asset_ids[:1], 'pending')

        line_item = work_order.line_items.get()
        assert line_item.completed_at is None
        assert line_item.completed_by is None


@pytest.mark.django_db
class TestActivation:

    def test_lead_time_window(self, rule_service, rule_data, publisher, moment, transport):
        """Test an order starting Jan 20 with 7 days lead time opens on Jan 13."""
        rule = rule_service.create_rule({**rule_data, 'start_date': date(2025, 1, 20)})
        service = WorkOrderActivationService(publisher=publisher)

        assert service.activate_due_work_orders(now=moment(2025, 1, 10)) == []

        activated = service.activate_due_work_orders(now=moment(2025, 1, 15))

        assert [work_order.scheduled_start for work_order in activated] == [date(2025, 1, 20)]
        assert WorkOrder.objects.filter(rule_id=rule.id, state=WorkOrder.State.BACKLOG).count() == 1
        assert MaintenanceEventTypes.WORK_ORDER_ACTIVATED in transport.event_types

    def test_sweep_is_idempotent(self, rule_service, rule_data, moment):
        rule_service.create_rule({**rule_data, 'start_date': date(2025, 1, 20)})
        service = WorkOrderActivationService()

        assert len(service.activate_due_work_orders(now=moment(2025, 2, 14))) == 2
        assert service.activate_due_work_orders(now=moment(2025, 2, 14)) == []

    def test_activation_appends_history(self, rule_service, rule_data, moment):
        rule = rule_service.create_rule({**rule_data, 'start_date': date(2025, 1, 20)})

        WorkOrderActivationService().activate_due_work_orders(now=moment(2025, 1, 13))

        work_order = first_rule_order(rule)
        history = list(work_order.history.values_list('state', 'changed_by_name'))
        assert history == [
            ('scheduled', 'Maintenance Scheduler'),
            ('backlog', 'Maintenance Scheduler'),
        ]
