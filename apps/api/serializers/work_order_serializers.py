# apps/api/serializers/work_order_serializers.py
"""
Work Order Serializers

Serializers for work orders, their line items, offers and history, and the
payloads of workflow actions.
"""

from rest_framework import serializers

from apps.core.models import (
    WorkOrder,
    WorkOrderLineItem,
    WorkOrderOffer,
    WorkOrderStateChange,
)


class WorkOrderLineItemSerializer(serializers.ModelSerializer):
    completion_status_display = serializers.CharField(
        source='get_completion_status_display',
        read_only=True
    )

    class Meta:
        model = WorkOrderLineItem
        fields = [
            'id', 'asset_id', 'asset_name',
            'completion_status', 'completion_status_display',
            'scheduled_date', 'completed_at', 'completed_by', 'completed_by_name',
            'notes',
        ]
        read_only_fields = fields


class WorkOrderOfferSerializer(serializers.ModelSerializer):

    class Meta:
        model = WorkOrderOffer
        fields = ['id', 'company_id', 'amount', 'received_at', 'notes']
        read_only_fields = fields


class WorkOrderStateChangeSerializer(serializers.ModelSerializer):

    class Meta:
        model = WorkOrderStateChange
        fields = ['sequence', 'state', 'event', 'changed_by', 'changed_by_name', 'changed_at']
        read_only_fields = fields


class WorkOrderListSerializer(serializers.ModelSerializer):
    """Lightweight work order representation for lists."""

    state_display = serializers.CharField(source='get_state_display', read_only=True)

    class Meta:
        model = WorkOrder
        fields = [
            'id', 'work_order_number', 'title',
            'work_order_type', 'order_type',
            'state', 'state_display',
            'rule_id', 'company_id', 'assigned_to',
            'scheduled_start', 'scheduled_end', 'lead_time_days',
        ]
        read_only_fields = fields


class WorkOrderDetailSerializer(serializers.ModelSerializer):
    """Full work order with line items, offers and state history."""

    state_display = serializers.CharField(source='get_state_display', read_only=True)
    work_order_type_display = serializers.CharField(source='get_work_order_type_display', read_only=True)
    order_type_display = serializers.CharField(source='get_order_type_display', read_only=True)
    activation_date = serializers.DateField(read_only=True)
    line_items = WorkOrderLineItemSerializer(many=True, read_only=True)
    offers = WorkOrderOfferSerializer(many=True, read_only=True)
    history = WorkOrderStateChangeSerializer(many=True, read_only=True)

    class Meta:
        model = WorkOrder
        fields = [
            'id', 'work_order_number', 'title', 'description',
            'work_order_type', 'work_order_type_display',
            'order_type', 'order_type_display',
            'state', 'state_display',
            'rule_id', 'company_id',
            'assigned_to', 'assigned_to_name', 'approval_responsible_id',
            'lead_time_days', 'activation_date',
            'scheduled_start', 'scheduled_end', 'actual_start', 'actual_end',
            'line_items', 'offers', 'history',
            'created_by', 'created_by_name', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class WorkOrderCreateSerializer(serializers.Serializer):
    """Ad-hoc work order input."""

    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    work_order_type = serializers.ChoiceField(choices=WorkOrder.Type.choices, default=WorkOrder.Type.INTERNAL)
    order_type = serializers.ChoiceField(choices=WorkOrder.OrderType.choices, default=WorkOrder.OrderType.UNPLANNED)
    asset_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    company_id = serializers.UUIDField(required=False, allow_null=True)
    approval_responsible_id = serializers.UUIDField(required=False, allow_null=True)
    scheduled_start = serializers.DateField(required=False, allow_null=True)
    scheduled_end = serializers.DateField(required=False, allow_null=True)

    def validate(self, attrs):
        start, end = attrs.get('scheduled_start'), attrs.get('scheduled_end')
        if start and end and end < start:
            raise serializers.ValidationError({'scheduled_end': 'End must not be before start.'})
        return attrs


class WorkOrderUpdateSerializer(serializers.ModelSerializer):
    """Descriptive fields only; state moves through transitions."""

    class Meta:
        model = WorkOrder
        fields = ['title', 'description', 'approval_responsible_id']


class WorkOrderTransitionSerializer(serializers.Serializer):
    """
    Event plus the payload its guards and effects read.

    The event is validated by the work order's state machine so unknown
    events surface as rejected transitions.
    """

    event = serializers.CharField()
    assigned_to = serializers.UUIDField(required=False)
    assigned_to_name = serializers.CharField(required=False, allow_blank=True)
    scheduled_start = serializers.DateField(required=False)
    scheduled_end = serializers.DateField(required=False)
    company_id = serializers.UUIDField(required=False)
    actual_end = serializers.DateTimeField(required=False)


class AvailableTransitionSerializer(serializers.Serializer):
    event = serializers.CharField()
    allowed = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)


class WorkOrderOfferCreateSerializer(serializers.Serializer):
    company_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class LineItemCompleteSerializer(serializers.Serializer):
    asset_id = serializers.UUIDField()
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class LineItemBulkStatusSerializer(serializers.Serializer):
    asset_ids = serializers.ListField(child=serializers.CharField(), allow_empty=False)
    completion_status = serializers.ChoiceField(choices=WorkOrderLineItem.CompletionStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
