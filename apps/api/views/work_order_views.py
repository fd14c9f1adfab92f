# apps/api/views/work_order_views.py
"""
Work Order API Views

Work order CRUD plus workflow transitions, offers and line items.
"""

import logging

from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.models import WorkOrder
from apps.core.services import (
    MaintenanceServiceError,
    RuleRescheduleError,
    WorkOrderActivationService,
    WorkOrderService,
)
from apps.api.serializers import (
    WorkOrderListSerializer,
    WorkOrderDetailSerializer,
    WorkOrderCreateSerializer,
    WorkOrderUpdateSerializer,
    WorkOrderTransitionSerializer,
    AvailableTransitionSerializer,
    WorkOrderOfferSerializer,
    WorkOrderOfferCreateSerializer,
    WorkOrderLineItemSerializer,
    LineItemCompleteSerializer,
    LineItemBulkStatusSerializer,
)
from .common import resolve_actor, service_error_response
from .filters import WorkOrderFilter

logger = logging.getLogger(__name__)


class WorkOrderViewSet(viewsets.ModelViewSet):
    """
    ViewSet for work orders.

    State only changes through the ``transition`` action.
    """

    queryset = WorkOrder.objects.prefetch_related('line_items', 'offers', 'history')
    serializer_class = WorkOrderDetailSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = WorkOrderFilter
    search_fields = ['work_order_number', 'title', 'description']
    ordering_fields = ['scheduled_start', 'created_at', 'work_order_number', 'state']
    ordering = ['scheduled_start', 'work_order_number']

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.work_order_service = WorkOrderService()

    def get_serializer_class(self):
        if self.action == 'list':
            return WorkOrderListSerializer
        elif self.action == 'create':
            return WorkOrderCreateSerializer
        elif self.action in ['update', 'partial_update']:
            return WorkOrderUpdateSerializer
        return WorkOrderDetailSerializer

    def create(self, request, *args, **kwargs):
        """Create an ad-hoc work order in the backlog."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            work_order = self.work_order_service.create_work_order(
                actor=resolve_actor(request),
                **serializer.validated_data
            )
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(WorkOrderDetailSerializer(work_order).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(WorkOrderDetailSerializer(instance).data)

    # ==========================================================================
    # Workflow
    # ==========================================================================

    @action(detail=True, methods=['post'])
    def transition(self, request, pk=None):
        """Apply a workflow event."""
        serializer = WorkOrderTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payload = dict(serializer.validated_data)
        event = payload.pop('event')

        try:
            work_order = self.work_order_service.transition(
                pk,
                event,
                payload=payload,
                actor=resolve_actor(request)
            )
        except RuleRescheduleError as e:
            return service_error_response(e, work_order=WorkOrderDetailSerializer(e.work_order).data)
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(WorkOrderDetailSerializer(self._reload(work_order)).data)

    @action(detail=True, methods=['get'])
    def transitions(self, request, pk=None):
        """Every event with whether it is currently allowed."""
        try:
            available = self.work_order_service.available_transitions(pk)
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(AvailableTransitionSerializer(available, many=True).data)

    @action(detail=False, methods=['post'], url_path='activate-due')
    def activate_due(self, request):
        """Run the lead-time activation sweep now."""
        activated = WorkOrderActivationService().activate_due_work_orders()
        return Response({
            'activated_count': len(activated),
            'work_orders': WorkOrderListSerializer(activated, many=True).data,
        })

    # ==========================================================================
    # Offers and Line Items
    # ==========================================================================

    @action(detail=True, methods=['post'])
    def offers(self, request, pk=None):
        """Record an offer from a maintenance company."""
        serializer = WorkOrderOfferCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            offer = self.work_order_service.receive_offer(
                pk,
                actor=resolve_actor(request),
                **serializer.validated_data
            )
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(WorkOrderOfferSerializer(offer).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='line-items/complete')
    def complete_line_item(self, request, pk=None):
        """Mark one asset's maintenance as done."""
        serializer = LineItemCompleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            line_item = self.work_order_service.complete_line_item(
                pk,
                serializer.validated_data['asset_id'],
                actor=resolve_actor(request),
                notes=serializer.validated_data.get('notes')
            )
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(WorkOrderLineItemSerializer(line_item).data)

    @action(detail=True, methods=['post'], url_path='line-items/bulk-status')
    def bulk_line_item_status(self, request, pk=None):
        """Apply one completion status to many assets."""
        serializer = LineItemBulkStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = self.work_order_service.update_line_item_statuses(
                pk,
                data['asset_ids'],
                data['completion_status'],
                actor=resolve_actor(request),
                notes=data.get('notes')
            )
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(result.to_dict())

    def _reload(self, work_order: WorkOrder) -> WorkOrder:
        return self.get_queryset().get(id=work_order.id)
