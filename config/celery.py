# config/celery.py
"""
Celery application for the maintenance scheduling service.

Periodic jobs are declared in ``CELERY_BEAT_SCHEDULE`` in settings; tasks
are discovered from ``apps.*.tasks`` modules.
"""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('maintenance_scheduling')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
