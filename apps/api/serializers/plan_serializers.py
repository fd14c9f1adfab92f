# apps/api/serializers/plan_serializers.py
"""
Maintenance Plan Serializers

Plans are owned by the client and round-trip through these serializers on
every request; only their calendar holds are stored server-side.
"""

from rest_framework import serializers

from apps.core.models import MaintenanceCalendarHold
from apps.core.services.plan import PLAN_ACTIONS, PlanAssetStatus, PlanStage


class PlanScheduleSerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False, allow_null=True)
    end_date = serializers.DateField(required=False, allow_null=True)
    hold_color = serializers.CharField(max_length=20, required=False, allow_null=True, allow_blank=True)

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date must not be before start date.'})
        return attrs


class PlanAssetSerializer(serializers.Serializer):
    asset_id = serializers.UUIDField()
    asset_number = serializers.CharField(required=False, allow_blank=True, default='')
    asset_name = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=PlanAssetStatus.choices, required=False, default=PlanAssetStatus.PENDING)
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    hold_id = serializers.CharField(required=False, allow_null=True)
    completed_at = serializers.DateTimeField(required=False, allow_null=True)
    completed_by = serializers.CharField(required=False, allow_null=True)
    completed_by_name = serializers.CharField(required=False, allow_null=True)


class MaintenancePlanSerializer(serializers.Serializer):
    plan_id = serializers.UUIDField(required=False, allow_null=True)
    name = serializers.CharField(required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    stage = serializers.ChoiceField(choices=PlanStage.choices, required=False)
    maintenance_company_id = serializers.CharField(required=False, allow_null=True)
    maintenance_company_name = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    interval_rule = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    schedule = PlanScheduleSerializer(required=False)
    assets = PlanAssetSerializer(many=True, required=False)
    stage_warnings = serializers.ListField(child=serializers.CharField(), required=False)
    last_transition_at = serializers.DateTimeField(required=False, allow_null=True)
    completed_at = serializers.DateTimeField(required=False, allow_null=True)


class PlanAssetInputSerializer(serializers.Serializer):
    asset_id = serializers.UUIDField()
    asset_number = serializers.CharField(required=False, allow_blank=True)
    asset_name = serializers.CharField(required=False, allow_blank=True)


class PlanCompanySerializer(serializers.Serializer):
    id = serializers.CharField(required=False, allow_null=True)
    name = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class PlanActionSerializer(serializers.Serializer):
    """One reducer action; which fields matter depends on ``type``."""

    type = serializers.ChoiceField(choices=sorted(PLAN_ACTIONS))
    payload = MaintenancePlanSerializer(required=False)
    name = serializers.CharField(required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    company = PlanCompanySerializer(required=False, allow_null=True)
    interval_rule = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    schedule = PlanScheduleSerializer(required=False)
    assets = PlanAssetInputSerializer(many=True, required=False)
    replace = serializers.BooleanField(required=False, default=False)
    asset_id = serializers.UUIDField(required=False)
    hold_id = serializers.CharField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    stage = serializers.ChoiceField(choices=PlanStage.choices, required=False)
    timestamp = serializers.DateTimeField(required=False)


class PlanDispatchSerializer(serializers.Serializer):
    plan = MaintenancePlanSerializer()
    action = PlanActionSerializer()


class PlanBulkStatusSerializer(serializers.Serializer):
    plan = MaintenancePlanSerializer()
    asset_ids = serializers.ListField(child=serializers.CharField(), allow_empty=False)
    status = serializers.ChoiceField(choices=PlanAssetStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class PlanSyncHoldsSerializer(serializers.Serializer):
    plan = MaintenancePlanSerializer()


class MaintenanceCalendarHoldSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = MaintenanceCalendarHold
        fields = [
            'id', 'plan_id', 'asset_id', 'asset_name',
            'start_date', 'end_date', 'hold_color', 'booking_id',
            'status', 'status_display', 'released_at',
            'created_by', 'created_by_name', 'created_at', 'updated_at',
        ]
        read_only_fields = fields
