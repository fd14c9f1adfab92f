# apps/core/services/rule_service.py
"""
Maintenance Rule Service

Rule CRUD and materialization of rules into scheduled work orders.
"""

import logging
from dataclasses import dataclass
from datetime import date
from itertools import islice
from typing import Any, Dict, Iterable, List, Optional

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from apps.core.events import MaintenanceEventPublisher
from apps.core.models import MaintenanceRule, WorkOrder, WorkOrderLineItem
from . import intervals
from .actor import Actor, coerce_uuid
from .exceptions import MaintenanceRuleNotFoundError, MaintenanceValidationError
from .state_machine import TERMINAL_STATES
from .targets import TargetResolver

logger = logging.getLogger(__name__)

RULE_FIELDS = (
    'name',
    'description',
    'work_type',
    'work_type_label',
    'is_internal',
    'service_provider_id',
    'target_type',
    'target_ids',
    'interval_type',
    'interval_value',
    'start_date',
    'next_due_date',
    'lead_time_days',
    'reschedule_mode',
)

# A rule's work order in one of these states no longer counts as open
CLOSED_STATES = TERMINAL_STATES | {WorkOrder.State.COMPLETED}


@dataclass(frozen=True)
class RuleConflict:
    rule: MaintenanceRule
    other: MaintenanceRule
    message: str


def validate_rule_data(data: Dict[str, Any]) -> None:
    """Raise MaintenanceValidationError listing every invalid field."""
    errors = {}

    if not (data.get('name') or '').strip():
        errors['name'] = 'Name is required.'

    work_type = data.get('work_type')
    if work_type not in MaintenanceRule.WorkType.values:
        errors['work_type'] = f"Unknown work type: {work_type}"
    elif work_type == MaintenanceRule.WorkType.CUSTOM and not (data.get('work_type_label') or '').strip():
        errors['work_type_label'] = 'Custom work types need a label.'

    if not data.get('is_internal', True) and not coerce_uuid(data.get('service_provider_id')):
        errors['service_provider_id'] = 'External rules need a service provider.'

    if data.get('target_type') not in MaintenanceRule.TargetType.values:
        errors['target_type'] = f"Unknown target type: {data.get('target_type')}"
    target_ids = data.get('target_ids')
    if not isinstance(target_ids, (list, tuple)) or not target_ids:
        errors['target_ids'] = 'At least one target is required.'
    elif any(coerce_uuid(target_id) is None for target_id in target_ids):
        errors['target_ids'] = 'Target ids must be UUIDs.'

    interval_value = data.get('interval_value')
    if data.get('interval_type') not in MaintenanceRule.IntervalType.values:
        errors['interval_type'] = f"Unknown interval type: {data.get('interval_type')}"
    if not isinstance(interval_value, int) or isinstance(interval_value, bool) or interval_value < 1:
        errors['interval_value'] = 'Interval value must be a positive integer.'

    start_date = data.get('start_date')
    next_due_date = data.get('next_due_date')
    if not isinstance(start_date, date):
        errors['start_date'] = 'Start date is required.'
    elif isinstance(next_due_date, date) and next_due_date < start_date:
        errors['next_due_date'] = 'Next due date cannot be before the start date.'

    lead_time_days = data.get('lead_time_days', 0)
    if not isinstance(lead_time_days, int) or lead_time_days < 0:
        errors['lead_time_days'] = 'Lead time must be zero or more days.'

    if data.get('reschedule_mode') not in MaintenanceRule.RescheduleMode.values:
        errors['reschedule_mode'] = f"Unknown reschedule mode: {data.get('reschedule_mode')}"

    if errors:
        raise MaintenanceValidationError(
            'Invalid maintenance rule: ' + '; '.join(f"{k}: {v}" for k, v in errors.items()),
            errors=errors,
        )


def _normalize_target_ids(target_ids) -> List[str]:
    normalized = []
    for target_id in target_ids or []:
        value = str(coerce_uuid(target_id))
        if value not in normalized:
            normalized.append(value)
    return normalized


def _targets_overlap(rule: MaintenanceRule, other: MaintenanceRule) -> bool:
    if rule.target_type != other.target_type:
        return False
    return bool(set(map(str, rule.target_ids)) & set(map(str, other.target_ids)))


def _intervals_overlap(rule: MaintenanceRule, other: MaintenanceRule) -> bool:
    if rule.work_type != other.work_type or rule.interval_type != other.interval_type:
        return False
    # Within 20% of each other counts as the same cadence
    ratio = rule.interval_value / other.interval_value
    return 0.8 <= ratio <= 1.2


def detect_rule_conflicts(rules: List[MaintenanceRule]) -> List[RuleConflict]:
    """Pairs of rules doing the same work on the same targets at a similar cadence."""
    conflicts = []
    for index, rule in enumerate(rules):
        for other in rules[index + 1:]:
            if _targets_overlap(rule, other) and _intervals_overlap(rule, other):
                conflicts.append(RuleConflict(
                    rule=rule,
                    other=other,
                    message=(
                        f"'{rule.name}' and '{other.name}' schedule {rule.get_work_type_display().lower()} "
                        f"work on the same {rule.target_type}s every "
                        f"{rule.interval_value} and {other.interval_value} {rule.interval_type}"
                    ),
                ))
    return conflicts


def preview_rule_schedule(
    rule: MaintenanceRule,
    occurrences: int = 3,
    today: Optional[date] = None
) -> List[Dict[str, Any]]:
    """
    Upcoming due dates with the day each enters the backlog.

    Usage-based rules only have the current anchor.
    """
    today = today or timezone.localdate()
    anchor = rule.effective_anchor()
    if anchor is None:
        return []

    if rule.is_time_based:
        due_dates = list(islice(
            intervals.iter_due_dates(anchor, rule.interval_type, rule.interval_value),
            max(1, occurrences)
        ))
    else:
        due_dates = [anchor]

    return [
        {
            'due_date': due_date,
            'lead_time_start': intervals.activation_date(due_date, rule.lead_time_days),
            'is_past': due_date < today,
        }
        for due_date in due_dates
    ]


def should_create_work_order(
    rule: MaintenanceRule,
    work_orders: List[WorkOrder],
    today: Optional[date] = None
) -> bool:
    """Due within the lead-time window and no open work order for the rule."""
    today = today or timezone.localdate()
    due_date = rule.effective_anchor()
    if due_date is None:
        return False
    if any(
        work_order.rule_id == rule.id and work_order.state not in CLOSED_STATES
        for work_order in work_orders
    ):
        return False
    return today >= intervals.activation_date(due_date, rule.lead_time_days)


class MaintenanceRuleService:
    """
    Service for maintenance rules.

    Handles:
    - Rule CRUD
    - Materializing scheduled work orders
    - Regenerating schedules when timing changes
    - Schedule previews and conflict detection
    """

    def __init__(
        self,
        target_resolver: TargetResolver = None,
        publisher: MaintenanceEventPublisher = None
    ):
        self.target_resolver = target_resolver or TargetResolver()
        self.publisher = publisher or MaintenanceEventPublisher()

    # ==========================================================================
    # Rule CRUD
    # ==========================================================================

    def get_rule(self, rule_id) -> MaintenanceRule:
        try:
            return MaintenanceRule.objects.get(id=rule_id)
        except MaintenanceRule.DoesNotExist:
            raise MaintenanceRuleNotFoundError(f"Maintenance rule {rule_id} not found")

    def list_rules(self, **filters) -> List[MaintenanceRule]:
        return list(MaintenanceRule.objects.filter(**filters))

    @transaction.atomic
    def create_rule(self, data: Dict[str, Any], actor: Actor = None) -> MaintenanceRule:
        """Create a rule and materialize its first scheduled work orders."""
        actor = actor or Actor.automation()
        data = self._with_defaults(data)
        validate_rule_data(data)

        rule = MaintenanceRule(
            **{field: data.get(field) for field in RULE_FIELDS if field in data},
            created_by=actor.id,
            created_by_name=actor.name,
        )
        rule.target_ids = _normalize_target_ids(rule.target_ids)
        if rule.is_internal:
            rule.service_provider_id = None
        rule.next_due_date = rule.next_due_date or rule.start_date
        rule.save()

        work_orders = self.materialize(rule, actor=actor)

        logger.info(
            f"Created maintenance rule {rule.id} '{rule.name}' "
            f"with {len(work_orders)} scheduled work orders"
        )
        self.publisher.rule_created(rule, len(work_orders))
        return rule

    @transaction.atomic
    def update_rule(self, rule_id, changes: Dict[str, Any], actor: Actor = None) -> MaintenanceRule:
        """
        Update a rule.

        Changing interval, start date, lead time or targets replaces the
        rule's scheduled work orders; any other edit leaves work orders alone.
        """
        actor = actor or Actor.automation()
        rule = self._get_rule_for_update(rule_id)

        current = {field: getattr(rule, field) for field in RULE_FIELDS}
        merged = {**current, **{k: v for k, v in changes.items() if k in RULE_FIELDS}}
        if 'target_ids' in changes:
            merged['target_ids'] = _normalize_target_ids(merged['target_ids'])
        if merged.get('start_date') != current['start_date'] and 'next_due_date' not in changes:
            merged['next_due_date'] = merged['start_date']
        if merged.get('is_internal'):
            merged['service_provider_id'] = None
        validate_rule_data(merged)

        changed_fields = [
            field for field in RULE_FIELDS
            if self._differs(current[field], merged[field])
        ]
        if not changed_fields:
            return rule

        for field in changed_fields:
            setattr(rule, field, merged[field])
        rule.save(update_fields=changed_fields + ['updated_at'])

        regenerate = any(field in MaintenanceRule.TEMPORAL_FIELDS for field in changed_fields)
        if regenerate:
            removed = self.remove_scheduled_work_orders(rule.id)
            created = self.materialize(
                rule,
                anchor=rule.next_due_date,
                actor=actor,
                covered=self._covered_dates(rule.id)
            )
            logger.info(
                f"Regenerated schedule for rule {rule.id}: "
                f"removed {removed}, created {len(created)} work orders"
            )
        else:
            logger.info(f"Updated maintenance rule {rule.id}: {', '.join(changed_fields)}")

        self.publisher.rule_updated(rule, changed_fields, regenerate)
        return rule

    @transaction.atomic
    def delete_rule(self, rule_id) -> int:
        """
        Delete a rule and its scheduled work orders.

        Work orders already in the backlog or beyond are kept. Returns the
        number of scheduled work orders removed.
        """
        rule = self._get_rule_for_update(rule_id)
        removed = self.remove_scheduled_work_orders(rule.id)
        rule.delete()

        logger.info(f"Deleted maintenance rule {rule_id}, removed {removed} scheduled work orders")
        self.publisher.rule_deleted(rule_id, removed)
        return removed

    # ==========================================================================
    # Materialization
    # ==========================================================================

    def materialize(
        self,
        rule: MaintenanceRule,
        anchor: Optional[date] = None,
        actor: Actor = None,
        after: Optional[date] = None,
        covered: Iterable[date] = ()
    ) -> List[WorkOrder]:
        """
        Generate scheduled work orders for the rule's upcoming occurrences.

        Occurrences start at ``anchor`` (the rule's start date by default)
        and stop after ``MATERIALIZATION_OCCURRENCES`` orders or
        ``MAX_HORIZON_MONTHS`` past the first one, whichever comes first.
        Occurrences on or before ``after`` and dates in ``covered`` (already
        held by another of the rule's work orders) are skipped and do not
        count towards the limit. Usage-based rules are not materialized.
        """
        actor = actor or Actor.automation()
        anchor = anchor or rule.start_date
        if not rule.is_time_based or anchor is None:
            logger.debug(f"Rule {rule.id} is usage based, nothing to materialize")
            return []

        policy = settings.MAINTENANCE_SETTINGS
        occurrences = intervals.iter_due_dates(anchor, rule.interval_type, rule.interval_value)
        covered = set(covered)
        upcoming = (
            due for due in occurrences
            if (after is None or due > after) and due not in covered
        )
        due_dates = []
        horizon = None
        for due_date in islice(upcoming, policy['MATERIALIZATION_OCCURRENCES']):
            horizon = horizon or due_date + relativedelta(months=policy['MAX_HORIZON_MONTHS'])
            if due_date > horizon:
                break
            due_dates.append(due_date)
        assets = self.target_resolver.resolve(rule)

        work_orders = [
            self._create_scheduled_work_order(rule, due_date, assets, actor)
            for due_date in due_dates
        ]
        if work_orders:
            self.publisher.work_orders_materialized(rule, work_orders)
        return work_orders

    def remove_scheduled_work_orders(self, rule_id) -> int:
        """Delete the rule's work orders that are still in ``scheduled``."""
        _, deleted = WorkOrder.objects.filter(
            rule_id=rule_id,
            state=WorkOrder.State.SCHEDULED
        ).delete()
        return deleted.get(WorkOrder._meta.label, 0)

    @transaction.atomic
    def create_work_order_from_rule(self, rule_id, actor: Actor = None) -> WorkOrder:
        """Create an immediately actionable work order for the rule's next due date."""
        actor = actor or Actor.automation()
        rule = self.get_rule(rule_id)
        assets = self.target_resolver.resolve(rule)
        due_date = rule.effective_anchor()

        work_order = self._build_work_order(rule, due_date, actor, WorkOrder.State.BACKLOG)
        self._create_line_items(work_order, assets, due_date)
        work_order.record_state_change(actor.id, actor.name)

        logger.info(f"Created work order {work_order.work_order_number} from rule {rule.id}")
        self.publisher.work_order_created(work_order)
        return work_order

    def replenish_schedules(self) -> Dict[str, int]:
        """
        Materialize rules whose scheduled series has run out.

        Continues each series from the rule's next due date, skipping dates
        already covered by the rule's existing work orders.
        """
        replenished = {}
        for rule in MaintenanceRule.objects.exclude(interval_type=MaintenanceRule.IntervalType.USES):
            has_scheduled = WorkOrder.objects.filter(
                rule_id=rule.id,
                state=WorkOrder.State.SCHEDULED
            ).exists()
            if has_scheduled:
                continue
            latest = WorkOrder.objects.filter(rule_id=rule.id).exclude(
                state__in=[WorkOrder.State.ABORTED, WorkOrder.State.OBSOLETE]
            ).aggregate(latest=Max('scheduled_start'))['latest']
            with transaction.atomic():
                created = self.materialize(rule, anchor=rule.effective_anchor(), after=latest)
            if created:
                replenished[str(rule.id)] = len(created)
        if replenished:
            logger.info(f"Replenished schedules for {len(replenished)} rules")
        return replenished

    # ==========================================================================
    # Analysis
    # ==========================================================================

    def preview_schedule(self, rule_id, occurrences: int = 3, today: Optional[date] = None) -> List[Dict[str, Any]]:
        return preview_rule_schedule(self.get_rule(rule_id), occurrences, today)

    def detect_conflicts(self) -> List[RuleConflict]:
        return detect_rule_conflicts(list(MaintenanceRule.objects.order_by('created_at')))

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _get_rule_for_update(self, rule_id) -> MaintenanceRule:
        try:
            return MaintenanceRule.objects.select_for_update().get(id=rule_id)
        except MaintenanceRule.DoesNotExist:
            raise MaintenanceRuleNotFoundError(f"Maintenance rule {rule_id} not found")

    def _covered_dates(self, rule_id) -> set:
        return set(
            WorkOrder.objects.filter(rule_id=rule_id, scheduled_start__isnull=False)
            .values_list('scheduled_start', flat=True)
        )

    def _with_defaults(self, data: Dict[str, Any]) -> Dict[str, Any]:
        defaults = {
            'work_type': MaintenanceRule.WorkType.INSPECTION,
            'is_internal': True,
            'target_type': MaintenanceRule.TargetType.ASSET,
            'interval_type': MaintenanceRule.IntervalType.MONTHS,
            'lead_time_days': 0,
            'reschedule_mode': MaintenanceRule.RescheduleMode.ACTUAL_COMPLETION,
        }
        return {**defaults, **{k: v for k, v in data.items() if v is not None}}

    @staticmethod
    def _differs(old, new) -> bool:
        if isinstance(old, list) or isinstance(new, list):
            return list(map(str, old or [])) != list(map(str, new or []))
        if old is None or new is None:
            return old != new
        return str(old) != str(new)

    def _build_work_order(self, rule: MaintenanceRule, due_date: date, actor: Actor, state: str) -> WorkOrder:
        work_order_type = WorkOrder.Type.INTERNAL if rule.is_internal else WorkOrder.Type.EXTERNAL
        return WorkOrder.objects.create(
            title=rule.name,
            description=rule.description,
            work_order_type=work_order_type,
            order_type=WorkOrder.OrderType.PLANNED,
            state=state,
            rule_id=rule.id,
            company_id=None if rule.is_internal else rule.service_provider_id,
            lead_time_days=rule.lead_time_days,
            scheduled_start=due_date,
            scheduled_end=due_date,
            created_by=actor.id,
            created_by_name=actor.name,
        )

    def _create_line_items(self, work_order: WorkOrder, assets, due_date: date) -> None:
        WorkOrderLineItem.objects.bulk_create([
            WorkOrderLineItem(
                work_order=work_order,
                asset_id=asset.asset_id,
                asset_name=asset.asset_name,
                scheduled_date=due_date,
            )
            for asset in assets
        ])

    def _create_scheduled_work_order(self, rule, due_date, assets, actor) -> WorkOrder:
        work_order = self._build_work_order(rule, due_date, actor, WorkOrder.State.SCHEDULED)
        self._create_line_items(work_order, assets, due_date)
        work_order.record_state_change(actor.id, actor.name)
        return work_order
