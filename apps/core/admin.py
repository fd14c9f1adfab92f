from django.contrib import admin
from .models import (
    MaintenanceCalendarHold,
    MaintenanceRule,
    WorkOrder,
    WorkOrderLineItem,
    WorkOrderOffer,
    WorkOrderStateChange,
)


class WorkOrderLineItemInline(admin.TabularInline):
    model = WorkOrderLineItem
    extra = 0


class WorkOrderOfferInline(admin.TabularInline):
    model = WorkOrderOffer
    extra = 0


class WorkOrderStateChangeInline(admin.TabularInline):
    model = WorkOrderStateChange
    extra = 0
    readonly_fields = ['sequence', 'state', 'event', 'changed_by', 'changed_by_name', 'changed_at']


@admin.register(MaintenanceRule)
class MaintenanceRuleAdmin(admin.ModelAdmin):
    list_display = ['name', 'work_type', 'target_type', 'interval_type', 'interval_value', 'next_due_date']
    list_filter = ['work_type', 'interval_type', 'is_internal', 'reschedule_mode']
    search_fields = ['name']


@admin.register(WorkOrder)
class WorkOrderAdmin(admin.ModelAdmin):
    list_display = ['work_order_number', 'title', 'work_order_type', 'state', 'scheduled_start']
    list_filter = ['state', 'work_order_type', 'order_type']
    search_fields = ['work_order_number', 'title']
    inlines = [WorkOrderLineItemInline, WorkOrderOfferInline, WorkOrderStateChangeInline]


@admin.register(MaintenanceCalendarHold)
class MaintenanceCalendarHoldAdmin(admin.ModelAdmin):
    list_display = ['plan_id', 'asset_id', 'start_date', 'end_date', 'status']
    list_filter = ['status']
