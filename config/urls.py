# config/urls.py
"""
URL configuration for the Maintenance Scheduling Service
"""

import logging

from django.contrib import admin
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.urls import path, include

logger = logging.getLogger(__name__)


def health_check(request):
    return JsonResponse({'status': 'ok', 'service': 'maintenance-service'})


def readiness_check(request):
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
        return JsonResponse({'status': 'ready', 'service': 'maintenance-service'})
    except DatabaseError as e:
        logger.error(f"Readiness check failed: {e}")
        return JsonResponse({'status': 'not_ready', 'error': str(e)}, status=503)


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health_check'),
    path('health/ready/', readiness_check, name='readiness_check'),
    path('api/v1/maintenance/', include('apps.api.urls', namespace='api')),
]
