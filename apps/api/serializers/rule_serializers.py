# apps/api/serializers/rule_serializers.py
"""
Maintenance Rule Serializers
"""

from rest_framework import serializers

from apps.core.models import MaintenanceRule, WorkOrder


class MaintenanceRuleSerializer(serializers.ModelSerializer):
    """Rule representation returned by the API."""

    work_type_display = serializers.CharField(source='work_type_display_label', read_only=True)
    is_time_based = serializers.BooleanField(read_only=True)
    scheduled_work_order_count = serializers.SerializerMethodField()

    class Meta:
        model = MaintenanceRule
        fields = [
            'id', 'name', 'description',
            'work_type', 'work_type_label', 'work_type_display',
            'is_internal', 'service_provider_id',
            'target_type', 'target_ids',
            'interval_type', 'interval_value', 'is_time_based',
            'start_date', 'next_due_date', 'lead_time_days', 'reschedule_mode',
            'scheduled_work_order_count',
            'created_by', 'created_by_name', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_scheduled_work_order_count(self, obj) -> int:
        return WorkOrder.objects.filter(rule_id=obj.id, state=WorkOrder.State.SCHEDULED).count()


class MaintenanceRuleWriteSerializer(serializers.Serializer):
    """
    Input for creating and updating rules.

    Field-level typing only; cross-field rules (custom labels, external
    providers) are enforced by the rule service.
    """

    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    work_type = serializers.ChoiceField(choices=MaintenanceRule.WorkType.choices, required=False)
    work_type_label = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    is_internal = serializers.BooleanField(required=False)
    service_provider_id = serializers.UUIDField(required=False, allow_null=True)
    target_type = serializers.ChoiceField(choices=MaintenanceRule.TargetType.choices, required=False)
    target_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    interval_type = serializers.ChoiceField(choices=MaintenanceRule.IntervalType.choices, required=False)
    interval_value = serializers.IntegerField(min_value=1)
    start_date = serializers.DateField()
    next_due_date = serializers.DateField(required=False, allow_null=True)
    lead_time_days = serializers.IntegerField(min_value=0, required=False)
    reschedule_mode = serializers.ChoiceField(choices=MaintenanceRule.RescheduleMode.choices, required=False)


class RulePreviewSerializer(serializers.Serializer):
    due_date = serializers.DateField()
    lead_time_start = serializers.DateField()
    is_past = serializers.BooleanField()


class RuleConflictSerializer(serializers.Serializer):
    rule_id = serializers.UUIDField(source='rule.id')
    rule_name = serializers.CharField(source='rule.name')
    conflicting_rule_id = serializers.UUIDField(source='other.id')
    conflicting_rule_name = serializers.CharField(source='other.name')
    message = serializers.CharField()
