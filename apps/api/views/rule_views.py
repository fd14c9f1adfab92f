# apps/api/views/rule_views.py
"""
Maintenance Rule API Views
"""

import logging

from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.models import MaintenanceRule
from apps.core.services import MaintenanceRuleService, MaintenanceServiceError
from apps.api.serializers import (
    MaintenanceRuleSerializer,
    MaintenanceRuleWriteSerializer,
    RulePreviewSerializer,
    RuleConflictSerializer,
    WorkOrderDetailSerializer,
)
from .common import resolve_actor, service_error_response
from .filters import MaintenanceRuleFilter

logger = logging.getLogger(__name__)


class MaintenanceRuleViewSet(viewsets.ModelViewSet):
    """
    ViewSet for maintenance rules.

    Writes go through MaintenanceRuleService so scheduled work orders are
    materialized and regenerated alongside the rule.
    """

    queryset = MaintenanceRule.objects.all()
    serializer_class = MaintenanceRuleSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = MaintenanceRuleFilter
    search_fields = ['name', 'description', 'work_type_label']
    ordering_fields = ['next_due_date', 'name', 'created_at']
    ordering = ['next_due_date', 'name']

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.rule_service = MaintenanceRuleService()

    def get_serializer_class(self):
        if self.action in ['create', 'update', 'partial_update']:
            return MaintenanceRuleWriteSerializer
        return MaintenanceRuleSerializer

    def create(self, request, *args, **kwargs):
        """Create a rule and its scheduled work orders."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            rule = self.rule_service.create_rule(serializer.validated_data, actor=resolve_actor(request))
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(MaintenanceRuleSerializer(rule).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        """Update a rule, regenerating its schedule when timing changes."""
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        serializer = self.get_serializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        try:
            rule = self.rule_service.update_rule(
                instance.id,
                serializer.validated_data,
                actor=resolve_actor(request)
            )
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(MaintenanceRuleSerializer(rule).data)

    def destroy(self, request, *args, **kwargs):
        """Delete a rule together with its still-scheduled work orders."""
        instance = self.get_object()
        try:
            removed = self.rule_service.delete_rule(instance.id)
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response({'removed_work_orders': removed}, status=status.HTTP_200_OK)

    @action(detail=True, methods=['get'])
    def preview(self, request, pk=None):
        """Upcoming due dates for the rule."""
        try:
            occurrences = int(request.query_params.get('occurrences', 3))
        except ValueError:
            return Response({'error': 'occurrences must be an integer'}, status=status.HTTP_400_BAD_REQUEST)

        try:
            schedule = self.rule_service.preview_schedule(pk, occurrences=occurrences)
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(RulePreviewSerializer(schedule, many=True).data)

    @action(detail=False, methods=['get'])
    def conflicts(self, request):
        """Rules that duplicate each other's work."""
        conflicts = self.rule_service.detect_conflicts()
        return Response({
            'count': len(conflicts),
            'conflicts': RuleConflictSerializer(conflicts, many=True).data,
        })

    @action(detail=True, methods=['post'], url_path='create-work-order')
    def create_work_order(self, request, pk=None):
        """Open a backlog work order for the rule's next due date right away."""
        try:
            work_order = self.rule_service.create_work_order_from_rule(pk, actor=resolve_actor(request))
        except MaintenanceServiceError as e:
            return service_error_response(e)

        return Response(WorkOrderDetailSerializer(work_order).data, status=status.HTTP_201_CREATED)
