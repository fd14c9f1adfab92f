# apps/core/services/hold_sync.py
"""
Calendar Hold Synchronizer

Keeps one active calendar hold, backed by a booking in the booking service,
for every pending asset of a planned maintenance plan, and releases every
other hold the plan owns.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import httpx
from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from apps.core.events import MaintenanceEventPublisher
from apps.core.models import MaintenanceCalendarHold
from shared.common.clients import BookingServiceClient, CircuitBreakerError
from .actor import Actor, coerce_uuid
from .exceptions import DependencyError, MaintenanceValidationError
from .plan import MaintenancePlan, PlanAsset, PlanAssetStatus, PlanStage, set_asset_hold

logger = logging.getLogger(__name__)

REMOTE_ERRORS = (httpx.HTTPError, CircuitBreakerError)


def default_hold_color() -> str:
    return settings.MAINTENANCE_SETTINGS['DEFAULT_HOLD_COLOR']


@dataclass
class HoldSyncResult:
    created: List[MaintenanceCalendarHold] = field(default_factory=list)
    released: List[MaintenanceCalendarHold] = field(default_factory=list)


class DjangoHoldStore:
    """Hold persistence through the async ORM API."""

    async def get_active_holds(self, plan_id) -> List[MaintenanceCalendarHold]:
        queryset = MaintenanceCalendarHold.objects.filter(
            plan_id=plan_id,
            status=MaintenanceCalendarHold.Status.ACTIVE
        )
        return [hold async for hold in queryset]

    async def create_hold(self, data: Dict) -> MaintenanceCalendarHold:
        return await MaintenanceCalendarHold.objects.acreate(**data)

    async def release_hold(self, hold: MaintenanceCalendarHold, released_at: datetime) -> MaintenanceCalendarHold:
        hold.status = MaintenanceCalendarHold.Status.RELEASED
        hold.released_at = released_at
        await hold.asave(update_fields=['status', 'released_at', 'updated_at'])
        return hold


class MaintenanceHoldSynchronizer:

    def __init__(
        self,
        hold_store: DjangoHoldStore = None,
        booking_client: BookingServiceClient = None,
        publisher: MaintenanceEventPublisher = None
    ):
        self.hold_store = hold_store or DjangoHoldStore()
        self.booking_client = booking_client or BookingServiceClient()
        self.publisher = publisher or MaintenanceEventPublisher()

    async def sync(self, plan: MaintenancePlan, actor: Optional[Actor] = None) -> HoldSyncResult:
        """
        Reconcile the plan's active holds against the holds it needs.

        A plan without an id has never been planned and owns no holds.
        Failures while creating or releasing raise ``DependencyError``
        with the work done so far in ``partial_result``.
        """
        result = HoldSyncResult()
        if not plan.plan_id:
            return result
        if coerce_uuid(plan.plan_id) is None:
            raise MaintenanceValidationError(f"Invalid plan id: {plan.plan_id}")

        requires_holds = plan.stage == PlanStage.PLANNED
        if requires_holds and not plan.schedule.is_complete:
            raise MaintenanceValidationError(
                'Maintenance schedule requires both start and end dates to publish holds.'
            )

        actor = actor or Actor.automation()
        hold_color = plan.schedule.hold_color or default_hold_color()

        try:
            active_holds = await self.hold_store.get_active_holds(plan.plan_id)
        except DatabaseError as e:
            raise DependencyError(f"Could not load holds for plan {plan.plan_id}: {e}", partial_result=result)
        hold_by_asset = {str(hold.asset_id): hold for hold in active_holds}

        for asset in plan.assets:
            existing = hold_by_asset.pop(asset.asset_id, None)
            needs_hold = requires_holds and asset.status == PlanAssetStatus.PENDING

            if not needs_hold:
                if existing:
                    await self._release(existing, result)
                continue

            if existing and existing.matches_window(plan.schedule.start_date, plan.schedule.end_date, hold_color):
                continue
            if existing:
                await self._release(existing, result)
            await self._create(plan, asset, hold_color, actor, result)

        for dangling in hold_by_asset.values():
            await self._release(dangling, result)

        logger.info(
            f"Synced holds for plan {plan.plan_id}: "
            f"{len(result.created)} created, {len(result.released)} released"
        )
        return result

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _booking_payload(self, plan: MaintenancePlan, asset: PlanAsset, actor: Actor) -> Dict:
        actor_id = str(actor.id) if actor.id else None
        return {
            'asset_id': asset.asset_id,
            'asset_number': asset.asset_number,
            'asset_name': asset.asset_name,
            'booking_mode': 'date-range',
            'start_date': plan.schedule.start_date.isoformat(),
            'end_date': plan.schedule.end_date.isoformat(),
            'purpose': f"Maintenance hold · {plan.name}" if plan.name else 'Scheduled maintenance hold',
            'notes': plan.notes or None,
            'booked_by_id': actor_id,
            'booked_by_name': actor.name,
            'requested_by': actor_id,
            'requested_by_name': actor.name,
            'status': settings.MAINTENANCE_SETTINGS['HOLD_BOOKING_STATUS'],
        }

    async def _create(
        self,
        plan: MaintenancePlan,
        asset: PlanAsset,
        hold_color: str,
        actor: Actor,
        result: HoldSyncResult
    ) -> MaintenanceCalendarHold:
        try:
            booking = await self.booking_client.create_booking(self._booking_payload(plan, asset, actor))
        except REMOTE_ERRORS as e:
            raise DependencyError(
                f"Could not book maintenance hold for asset {asset.asset_id}: {e}",
                partial_result=result
            )

        booking_id = booking.get('id')
        try:
            hold = await self.hold_store.create_hold({
                'plan_id': plan.plan_id,
                'asset_id': asset.asset_id,
                'asset_name': asset.asset_name or None,
                'start_date': plan.schedule.start_date,
                'end_date': plan.schedule.end_date,
                'hold_color': hold_color,
                'booking_id': str(booking_id) if booking_id else None,
                'created_by': actor.id,
                'created_by_name': actor.name,
            })
        except DatabaseError as e:
            if booking_id:
                await self._cancel_booking(str(booking_id), 'Maintenance hold could not be recorded')
            raise DependencyError(
                f"Could not record maintenance hold for asset {asset.asset_id}: {e}",
                partial_result=result
            )

        result.created.append(hold)
        self.publisher.hold_created(hold)
        return hold

    async def _release(self, hold: MaintenanceCalendarHold, result: HoldSyncResult) -> MaintenanceCalendarHold:
        if hold.booking_id:
            await self._cancel_booking(hold.booking_id, 'Maintenance window released')

        try:
            hold = await self.hold_store.release_hold(hold, timezone.now())
        except DatabaseError as e:
            raise DependencyError(f"Could not release maintenance hold {hold.id}: {e}", partial_result=result)

        result.released.append(hold)
        self.publisher.hold_released(hold)
        return hold

    async def _cancel_booking(self, booking_id: str, reason: str) -> None:
        try:
            await self.booking_client.cancel_booking(booking_id, reason)
        except REMOTE_ERRORS as e:
            logger.warning(f"Failed to cancel booking {booking_id}: {e}")


def apply_hold_sync_result(plan: MaintenancePlan, result: HoldSyncResult) -> MaintenancePlan:
    """Fold the hold ids produced by a sync back into the plan."""
    for hold in result.released:
        asset = plan.get_asset(hold.asset_id)
        if asset is not None and asset.hold_id == str(hold.id):
            plan = set_asset_hold(plan, asset.asset_id, None)
    for hold in result.created:
        if plan.get_asset(hold.asset_id) is not None:
            plan = set_asset_hold(plan, hold.asset_id, hold.id)
    return plan
