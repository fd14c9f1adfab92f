# apps/api/views/plan_views.py
"""
Maintenance Plan API Views

Plans are passed in with every request and returned updated; the server
keeps only the calendar holds a planned plan owns.
"""

import logging

from asgiref.sync import async_to_sync
from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.events import HistoryActions, MaintenanceEventPublisher
from apps.core.models import MaintenanceCalendarHold
from apps.core.services import (
    Actor,
    DependencyError,
    MaintenanceHoldSynchronizer,
    MaintenanceServiceError,
    apply_hold_sync_result,
)
from apps.core.services.plan import (
    MaintenancePlan,
    PlanAssetStatus,
    apply_plan_action,
    bulk_mark_assets,
)
from apps.api.serializers import (
    MaintenancePlanSerializer,
    PlanDispatchSerializer,
    PlanBulkStatusSerializer,
    PlanSyncHoldsSerializer,
    MaintenanceCalendarHoldSerializer,
)
from .common import resolve_actor, service_error_response
from .filters import MaintenanceCalendarHoldFilter

logger = logging.getLogger(__name__)

ASSET_HISTORY_ACTIONS = {
    PlanAssetStatus.COMPLETED: HistoryActions.MAINTENANCE_PERFORMED,
    PlanAssetStatus.SKIPPED: HistoryActions.MAINTENANCE_SKIPPED,
    PlanAssetStatus.PENDING: HistoryActions.MAINTENANCE_REOPENED,
}

ACTION_ASSET_STATUSES = {
    'mark_asset_completed': PlanAssetStatus.COMPLETED,
    'mark_asset_skipped': PlanAssetStatus.SKIPPED,
    'mark_asset_pending': PlanAssetStatus.PENDING,
}


def plan_response_data(plan: MaintenancePlan) -> dict:
    return MaintenancePlanSerializer(plan.to_dict()).data


class MaintenanceCalendarHoldViewSet(viewsets.ReadOnlyModelViewSet):
    """Calendar holds, filterable by plan, asset and status."""

    queryset = MaintenanceCalendarHold.objects.all()
    serializer_class = MaintenanceCalendarHoldSerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = MaintenanceCalendarHoldFilter
    ordering_fields = ['start_date', 'created_at']
    ordering = ['start_date']


class MaintenancePlanViewSet(viewsets.ViewSet):
    """
    Stateless endpoints over caller-owned maintenance plans.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.publisher = MaintenanceEventPublisher()

    def get_hold_synchronizer(self) -> MaintenanceHoldSynchronizer:
        return MaintenanceHoldSynchronizer(publisher=self.publisher)

    @action(detail=False, methods=['post'], url_path='dispatch', url_name='dispatch')
    def dispatch_action(self, request):
        """Apply one action to a plan and return the new plan."""
        serializer = PlanDispatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        actor = resolve_actor(request)
        plan_action = dict(serializer.validated_data['action'])
        if plan_action['type'] == 'mark_asset_completed':
            plan_action['completed_by'] = {'id': actor.id, 'name': actor.name}

        try:
            plan = MaintenancePlan.from_dict(serializer.validated_data['plan'])
            plan = apply_plan_action(plan, plan_action)
        except MaintenanceServiceError as e:
            return service_error_response(e)

        asset_status = ACTION_ASSET_STATUSES.get(plan_action['type'])
        if asset_status:
            self._record_asset_change(plan_action['asset_id'], asset_status, actor)

        return Response(plan_response_data(plan))

    @action(detail=False, methods=['post'], url_path='bulk-status', url_name='bulk-status')
    def bulk_status(self, request):
        """Set many assets of a plan to one status."""
        serializer = PlanBulkStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        actor = resolve_actor(request)
        try:
            plan = MaintenancePlan.from_dict(data['plan'])
            plan, result = bulk_mark_assets(
                plan,
                data['asset_ids'],
                data['status'],
                actor=actor,
                notes=data.get('notes')
            )
        except MaintenanceServiceError as e:
            return service_error_response(e)

        for asset_id in result.succeeded:
            self._record_asset_change(asset_id, data['status'], actor)

        return Response({
            'plan': plan_response_data(plan),
            'result': result.to_dict(),
        })

    @action(detail=False, methods=['post'], url_path='sync-holds', url_name='sync-holds')
    def sync_holds(self, request):
        """Reconcile the plan's calendar holds and fold the hold ids back in."""
        serializer = PlanSyncHoldsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        actor = resolve_actor(request)
        synchronizer = self.get_hold_synchronizer()
        try:
            plan = MaintenancePlan.from_dict(serializer.validated_data['plan'])
            result = async_to_sync(synchronizer.sync)(plan, actor)
        except DependencyError as e:
            partial = e.partial_result
            extra = {}
            if partial is not None:
                extra = {
                    'plan': plan_response_data(apply_hold_sync_result(plan, partial)),
                    'created': MaintenanceCalendarHoldSerializer(partial.created, many=True).data,
                    'released': MaintenanceCalendarHoldSerializer(partial.released, many=True).data,
                }
            return service_error_response(e, **extra)
        except MaintenanceServiceError as e:
            return service_error_response(e)

        plan = apply_hold_sync_result(plan, result)
        return Response({
            'plan': plan_response_data(plan),
            'created': MaintenanceCalendarHoldSerializer(result.created, many=True).data,
            'released': MaintenanceCalendarHoldSerializer(result.released, many=True).data,
        }, status=status.HTTP_200_OK)

    def _record_asset_change(self, asset_id, asset_status: str, actor: Actor) -> None:
        self.publisher.record_change(
            entity_type='asset',
            entity_id=str(asset_id),
            action=ASSET_HISTORY_ACTIONS[asset_status],
            changed_by=actor.id,
            changed_by_name=actor.name,
            changes=[{'field': 'maintenance_status', 'old_value': None, 'new_value': asset_status}],
        )
