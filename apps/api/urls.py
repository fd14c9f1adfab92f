# apps/api/urls.py
"""
Maintenance API URL Configuration
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    MaintenanceRuleViewSet,
    WorkOrderViewSet,
    MaintenanceCalendarHoldViewSet,
    MaintenancePlanViewSet,
)

app_name = 'api'

router = DefaultRouter()
router.register(r'rules', MaintenanceRuleViewSet, basename='rule')
router.register(r'work-orders', WorkOrderViewSet, basename='work-order')
router.register(r'holds', MaintenanceCalendarHoldViewSet, basename='hold')
router.register(r'plans', MaintenancePlanViewSet, basename='plan')

urlpatterns = [
    path('', include(router.urls)),
]
