# apps/core/services/plan.py
"""
Maintenance Plan

A maintenance plan tracks a batch of assets through one maintenance window
(draft -> planned -> completed). Plans are immutable values owned by the
caller; every operation here returns a new plan and performs no I/O.
Calendar holds for a plan are reconciled separately by
``hold_sync.MaintenanceHoldSynchronizer``.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from django.db import models
from django.utils import timezone

from .actor import Actor
from .exceptions import MaintenanceValidationError
from .results import BatchResult

PLANNED_MISSING_SCHEDULE_MESSAGE = 'Start date and end date are required to plan maintenance.'
PLANNED_MISSING_ASSETS_MESSAGE = 'At least one asset must be selected before planning maintenance.'
COMPLETION_INCOMPLETE_ASSETS_MESSAGE = 'All assets must be completed or skipped before closing maintenance.'


class PlanStage(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    PLANNED = 'planned', 'Planned'
    COMPLETED = 'completed', 'Completed'


class PlanAssetStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    SKIPPED = 'skipped', 'Skipped'


CLOSED_ASSET_STATUSES = frozenset({PlanAssetStatus.COMPLETED, PlanAssetStatus.SKIPPED})


@dataclass(frozen=True)
class PlanAsset:
    asset_id: str
    asset_number: str = ''
    asset_name: str = ''
    status: str = PlanAssetStatus.PENDING
    notes: Optional[str] = None
    hold_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    completed_by_name: Optional[str] = None

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_ASSET_STATUSES


@dataclass(frozen=True)
class PlanSchedule:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    hold_color: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.start_date and self.end_date)


@dataclass(frozen=True)
class MaintenancePlan:
    plan_id: Optional[str] = None
    name: str = ''
    description: str = ''
    notes: str = ''
    stage: str = PlanStage.DRAFT
    maintenance_company_id: Optional[str] = None
    maintenance_company_name: Optional[str] = None
    interval_rule: Optional[str] = None
    schedule: PlanSchedule = field(default_factory=PlanSchedule)
    assets: Tuple[PlanAsset, ...] = ()
    stage_warnings: Tuple[str, ...] = ()
    last_transition_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def get_asset(self, asset_id) -> Optional[PlanAsset]:
        asset_id = str(asset_id)
        return next((asset for asset in self.assets if asset.asset_id == asset_id), None)

    @property
    def all_assets_closed(self) -> bool:
        return all(asset.is_closed for asset in self.assets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'plan_id': self.plan_id,
            'name': self.name,
            'description': self.description,
            'notes': self.notes,
            'stage': str(self.stage),
            'maintenance_company_id': self.maintenance_company_id,
            'maintenance_company_name': self.maintenance_company_name,
            'interval_rule': self.interval_rule,
            'schedule': {
                'start_date': self.schedule.start_date,
                'end_date': self.schedule.end_date,
                'hold_color': self.schedule.hold_color,
            },
            'assets': [
                {
                    'asset_id': asset.asset_id,
                    'asset_number': asset.asset_number,
                    'asset_name': asset.asset_name,
                    'status': str(asset.status),
                    'notes': asset.notes,
                    'hold_id': asset.hold_id,
                    'completed_at': asset.completed_at,
                    'completed_by': asset.completed_by,
                    'completed_by_name': asset.completed_by_name,
                }
                for asset in self.assets
            ],
            'stage_warnings': list(self.stage_warnings),
            'last_transition_at': self.last_transition_at,
            'completed_at': self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'MaintenancePlan':
        return hydrate(cls(), data)


# =============================================================================
# HELPERS
# =============================================================================

def _now(timestamp: Optional[datetime]) -> datetime:
    return timestamp or timezone.now()


def _str_or_none(value) -> Optional[str]:
    return None if value in (None, '') else str(value)


def _build_asset(data: Mapping[str, Any]) -> PlanAsset:
    if isinstance(data, PlanAsset):
        return data
    return PlanAsset(
        asset_id=str(data['asset_id']),
        asset_number=data.get('asset_number') or '',
        asset_name=data.get('asset_name') or '',
        status=data.get('status') or PlanAssetStatus.PENDING,
        notes=data.get('notes'),
        hold_id=_str_or_none(data.get('hold_id')),
        completed_at=data.get('completed_at'),
        completed_by=_str_or_none(data.get('completed_by')),
        completed_by_name=data.get('completed_by_name'),
    )


def _require_asset(plan: MaintenancePlan, asset_id) -> PlanAsset:
    asset = plan.get_asset(asset_id)
    if asset is None:
        raise MaintenanceValidationError(f"Asset {asset_id} is not part of the maintenance plan")
    return asset


def _replace_asset(plan: MaintenancePlan, asset_id, **changes) -> Tuple[PlanAsset, ...]:
    asset_id = str(asset_id)
    return tuple(
        replace(asset, **changes) if asset.asset_id == asset_id else asset
        for asset in plan.assets
    )


def _settle_stage(
    plan: MaintenancePlan,
    assets: Tuple[PlanAsset, ...],
    timestamp: datetime
) -> MaintenancePlan:
    """
    Re-evaluate the stage after asset statuses changed: close the plan when
    every asset is completed or skipped, reopen a closed plan otherwise.
    """
    if all(asset.is_closed for asset in assets):
        return replace(
            plan,
            assets=assets,
            stage=PlanStage.COMPLETED,
            stage_warnings=(),
            completed_at=timestamp,
            last_transition_at=timestamp,
        )

    if plan.stage == PlanStage.COMPLETED:
        return replace(
            plan,
            assets=assets,
            stage=PlanStage.PLANNED,
            stage_warnings=(COMPLETION_INCOMPLETE_ASSETS_MESSAGE,),
            completed_at=None,
            last_transition_at=timestamp,
        )

    return replace(plan, assets=assets, stage_warnings=(), completed_at=None)


def planned_warnings(plan: MaintenancePlan) -> List[str]:
    warnings = []
    if not plan.schedule.is_complete:
        warnings.append(PLANNED_MISSING_SCHEDULE_MESSAGE)
    if not plan.assets:
        warnings.append(PLANNED_MISSING_ASSETS_MESSAGE)
    return warnings


def completion_warnings(plan: MaintenancePlan) -> List[str]:
    if not plan.all_assets_closed:
        return [COMPLETION_INCOMPLETE_ASSETS_MESSAGE]
    return []


# =============================================================================
# OPERATIONS
# =============================================================================

def create_plan() -> MaintenancePlan:
    return MaintenancePlan()


def reset(plan: MaintenancePlan) -> MaintenancePlan:
    return MaintenancePlan()


def hydrate(plan: MaintenancePlan, data: Mapping[str, Any]) -> MaintenancePlan:
    """Overlay persisted or client-held plan data onto ``plan``."""
    changes = {}
    for name in (
        'name', 'description', 'notes', 'stage', 'interval_rule',
        'maintenance_company_name', 'last_transition_at', 'completed_at',
    ):
        if name in data:
            changes[name] = data[name]
    for name in ('plan_id', 'maintenance_company_id'):
        if name in data:
            changes[name] = _str_or_none(data[name])

    if data.get('schedule'):
        changes['schedule'] = replace(plan.schedule, **{
            key: value for key, value in data['schedule'].items()
            if key in ('start_date', 'end_date', 'hold_color')
        })
    if data.get('assets') is not None:
        changes['assets'] = tuple(_build_asset(asset) for asset in data['assets'])
    if data.get('stage_warnings') is not None:
        changes['stage_warnings'] = tuple(data['stage_warnings'])

    if changes.get('stage', plan.stage) not in PlanStage.values:
        raise MaintenanceValidationError(f"Unknown plan stage: {changes['stage']}")
    return replace(plan, **changes)


def set_name(plan: MaintenancePlan, name: str) -> MaintenancePlan:
    return replace(plan, name=(name or '').strip())


def set_description(plan: MaintenancePlan, description: str) -> MaintenancePlan:
    return replace(plan, description=(description or '').strip())


def set_notes(plan: MaintenancePlan, notes: str) -> MaintenancePlan:
    return replace(plan, notes=notes if isinstance(notes, str) else '')


def set_company(plan: MaintenancePlan, company_id=None, company_name: str = None) -> MaintenancePlan:
    if not company_id:
        return replace(plan, maintenance_company_id=None, maintenance_company_name=None)
    return replace(plan, maintenance_company_id=str(company_id), maintenance_company_name=company_name)


def set_interval_rule(plan: MaintenancePlan, interval_rule: Optional[str]) -> MaintenancePlan:
    return replace(plan, interval_rule=interval_rule or None)


def update_schedule(plan: MaintenancePlan, **changes) -> MaintenancePlan:
    """Merge ``start_date``, ``end_date`` and/or ``hold_color`` into the schedule."""
    return replace(plan, schedule=replace(plan.schedule, **changes))


def add_assets(
    plan: MaintenancePlan,
    assets: Iterable[Mapping[str, Any]],
    replace_existing: bool = False
) -> MaintenancePlan:
    """
    Add assets as pending. Assets already in the plan keep their state
    unless ``replace_existing`` swaps out the whole list.
    """
    incoming = [
        PlanAsset(
            asset_id=str(asset['asset_id']),
            asset_number=asset.get('asset_number') or '',
            asset_name=asset.get('asset_name') or '',
        )
        for asset in assets
    ]

    if replace_existing:
        merged = []
        for asset in incoming:
            if all(existing.asset_id != asset.asset_id for existing in merged):
                merged.append(asset)
    else:
        merged = list(plan.assets)
        for asset in incoming:
            if all(existing.asset_id != asset.asset_id for existing in merged):
                merged.append(asset)
    merged = tuple(merged)

    if plan.stage == PlanStage.COMPLETED and any(not asset.is_closed for asset in merged):
        return replace(plan, assets=merged, stage=PlanStage.PLANNED, completed_at=None, stage_warnings=())
    if plan.stage != PlanStage.DRAFT and not merged:
        return replace(
            plan,
            assets=merged,
            stage=PlanStage.DRAFT,
            completed_at=None,
            stage_warnings=(PLANNED_MISSING_ASSETS_MESSAGE,),
        )
    return replace(plan, assets=merged)


def remove_asset(plan: MaintenancePlan, asset_id, timestamp: Optional[datetime] = None) -> MaintenancePlan:
    asset_id = str(asset_id)
    assets = tuple(asset for asset in plan.assets if asset.asset_id != asset_id)
    if not assets:
        return replace(
            plan,
            assets=assets,
            stage=PlanStage.DRAFT,
            stage_warnings=(PLANNED_MISSING_ASSETS_MESSAGE,),
            completed_at=None,
        )
    return _settle_stage(plan, assets, _now(timestamp))


def set_asset_hold(plan: MaintenancePlan, asset_id, hold_id) -> MaintenancePlan:
    _require_asset(plan, asset_id)
    return replace(plan, assets=_replace_asset(plan, asset_id, hold_id=_str_or_none(hold_id)))


def mark_asset_completed(
    plan: MaintenancePlan,
    asset_id,
    completed_by: Optional[Actor] = None,
    timestamp: Optional[datetime] = None,
    notes: Optional[str] = None
) -> MaintenancePlan:
    asset = _require_asset(plan, asset_id)
    timestamp = _now(timestamp)
    assets = _replace_asset(
        plan,
        asset_id,
        status=PlanAssetStatus.COMPLETED,
        completed_at=timestamp,
        completed_by=_str_or_none(completed_by.id) if completed_by else None,
        completed_by_name=completed_by.name if completed_by else None,
        notes=notes if notes is not None else asset.notes,
    )
    return _settle_stage(plan, assets, timestamp)


def mark_asset_skipped(
    plan: MaintenancePlan,
    asset_id,
    reason: Optional[str] = None,
    timestamp: Optional[datetime] = None
) -> MaintenancePlan:
    asset = _require_asset(plan, asset_id)
    timestamp = _now(timestamp)
    assets = _replace_asset(
        plan,
        asset_id,
        status=PlanAssetStatus.SKIPPED,
        completed_at=timestamp,
        notes=reason if reason is not None else asset.notes,
    )
    return _settle_stage(plan, assets, timestamp)


def mark_asset_pending(
    plan: MaintenancePlan,
    asset_id,
    reason: Optional[str] = None,
    timestamp: Optional[datetime] = None
) -> MaintenancePlan:
    asset = _require_asset(plan, asset_id)
    assets = _replace_asset(
        plan,
        asset_id,
        status=PlanAssetStatus.PENDING,
        completed_at=None,
        completed_by=None,
        completed_by_name=None,
        notes=reason if reason is not None else asset.notes,
    )
    plan = _settle_stage(plan, assets, _now(timestamp))
    # A reopened asset always leaves the plan short of completion
    return replace(plan, stage_warnings=tuple(completion_warnings(plan)))


def advance_stage(plan: MaintenancePlan, stage: str, timestamp: Optional[datetime] = None) -> MaintenancePlan:
    """
    Move the plan to ``stage``.

    Unmet conditions leave the stage unchanged and are reported in
    ``stage_warnings``; they are never raised.
    """
    if stage == PlanStage.DRAFT:
        return replace(
            plan,
            stage=PlanStage.DRAFT,
            stage_warnings=(),
            completed_at=None,
            last_transition_at=_now(timestamp),
        )

    if stage == PlanStage.PLANNED:
        warnings = planned_warnings(plan)
        if warnings:
            return replace(plan, stage_warnings=tuple(warnings))
        return replace(
            plan,
            plan_id=plan.plan_id or str(uuid.uuid4()),
            stage=PlanStage.PLANNED,
            stage_warnings=(),
            completed_at=None,
            last_transition_at=_now(timestamp),
        )

    if stage == PlanStage.COMPLETED:
        warnings = completion_warnings(plan)
        if warnings:
            return replace(plan, stage_warnings=tuple(warnings))
        timestamp = _now(timestamp)
        return replace(
            plan,
            stage=PlanStage.COMPLETED,
            stage_warnings=(),
            completed_at=timestamp,
            last_transition_at=timestamp,
        )

    raise MaintenanceValidationError(f"Unknown plan stage: {stage}")


def bulk_mark_assets(
    plan: MaintenancePlan,
    asset_ids: Iterable,
    status: str,
    actor: Optional[Actor] = None,
    timestamp: Optional[datetime] = None,
    notes: Optional[str] = None
) -> Tuple[MaintenancePlan, BatchResult]:
    """
    Apply one status to many assets, each independently.

    Unknown assets are reported as failures; the rest are still applied.
    """
    if status not in PlanAssetStatus.values:
        raise MaintenanceValidationError(f"Unknown asset status: {status}")

    timestamp = _now(timestamp)
    result = BatchResult()
    for asset_id in asset_ids:
        try:
            if status == PlanAssetStatus.COMPLETED:
                plan = mark_asset_completed(plan, asset_id, actor, timestamp, notes)
            elif status == PlanAssetStatus.SKIPPED:
                plan = mark_asset_skipped(plan, asset_id, notes, timestamp)
            else:
                plan = mark_asset_pending(plan, asset_id, notes, timestamp)
        except MaintenanceValidationError as e:
            result.record_failure(asset_id, e)
        else:
            result.record_success(asset_id)
    return plan, result


# =============================================================================
# ACTION DISPATCH
# =============================================================================

def _actor_from(action: Mapping[str, Any]) -> Optional[Actor]:
    completed_by = action.get('completed_by')
    if not completed_by:
        return None
    return Actor.from_user(completed_by.get('id'), completed_by.get('name'))


PLAN_ACTIONS: Dict[str, Callable[[MaintenancePlan, Mapping[str, Any]], MaintenancePlan]] = {
    'reset': lambda plan, action: reset(plan),
    'hydrate': lambda plan, action: hydrate(plan, action.get('payload') or {}),
    'set_name': lambda plan, action: set_name(plan, action.get('name')),
    'set_description': lambda plan, action: set_description(plan, action.get('description')),
    'set_notes': lambda plan, action: set_notes(plan, action.get('notes')),
    'set_company': lambda plan, action: set_company(
        plan,
        (action.get('company') or {}).get('id'),
        (action.get('company') or {}).get('name'),
    ),
    'set_interval_rule': lambda plan, action: set_interval_rule(plan, action.get('interval_rule')),
    'update_schedule': lambda plan, action: update_schedule(plan, **(action.get('schedule') or {})),
    'add_assets': lambda plan, action: add_assets(plan, action.get('assets') or [], bool(action.get('replace'))),
    'remove_asset': lambda plan, action: remove_asset(plan, action['asset_id'], action.get('timestamp')),
    'set_asset_hold': lambda plan, action: set_asset_hold(plan, action['asset_id'], action.get('hold_id')),
    'mark_asset_completed': lambda plan, action: mark_asset_completed(
        plan, action['asset_id'], _actor_from(action), action.get('timestamp'), action.get('notes'),
    ),
    'mark_asset_skipped': lambda plan, action: mark_asset_skipped(
        plan, action['asset_id'], action.get('reason'), action.get('timestamp'),
    ),
    'mark_asset_pending': lambda plan, action: mark_asset_pending(
        plan, action['asset_id'], action.get('reason'), action.get('timestamp'),
    ),
    'advance_stage': lambda plan, action: advance_stage(plan, action['stage'], action.get('timestamp')),
}


def apply_plan_action(plan: MaintenancePlan, action: Mapping[str, Any]) -> MaintenancePlan:
    """Apply one ``{'type': ..., ...}`` action to a plan."""
    handler = PLAN_ACTIONS.get(action.get('type'))
    if handler is None:
        raise MaintenanceValidationError(f"Unknown plan action: {action.get('type')}")
    try:
        return handler(plan, action)
    except (KeyError, TypeError) as e:
        raise MaintenanceValidationError(f"Invalid {action.get('type')} action: {e}")
