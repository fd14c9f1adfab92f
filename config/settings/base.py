"""Base settings for the Maintenance Scheduling Service."""
import os
from datetime import timedelta
from pathlib import Path

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key')
DEBUG = os.environ.get('DEBUG', 'True').lower() == 'true'
ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'corsheaders',
    'django_filters',
    'apps.core',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'shared.common.middleware.RequestIDMiddleware',
    'shared.common.middleware.LoggingMiddleware',
]

ROOT_URLCONF = 'config.urls'
WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'
TEMPLATES = [{'BACKEND': 'django.template.backends.django.DjangoTemplates', 'DIRS': [], 'APP_DIRS': True, 'OPTIONS': {'context_processors': ['django.template.context_processors.debug', 'django.template.context_processors.request', 'django.contrib.auth.context_processors.auth', 'django.contrib.messages.context_processors.messages']}}]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'maintenance_service_db'),
        'USER': os.environ.get('DB_USER', 'maintenance_service_user'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'maintenance_service_password'),
        'HOST': os.environ.get('DB_HOST', 'pgbouncer'),
        'PORT': os.environ.get('DB_PORT', '6432'),
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'shared.common.authentication.JWTAuthentication',
        'shared.common.authentication.ServiceAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.IsAuthenticated'],
    'DEFAULT_PAGINATION_CLASS': 'shared.common.pagination.StandardPagination',
    'PAGE_SIZE': 20,
    'DEFAULT_FILTER_BACKENDS': ['django_filters.rest_framework.DjangoFilterBackend', 'rest_framework.filters.SearchFilter', 'rest_framework.filters.OrderingFilter'],
    'EXCEPTION_HANDLER': 'shared.common.exceptions.custom_exception_handler',
}

CORS_ALLOW_ALL_ORIGINS = DEBUG

# Celery
REDIS_URL = os.environ.get('REDIS_URL', 'redis://redis:6379/7')
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', REDIS_URL)
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', REDIS_URL)
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 300  # 5 minutes

CELERY_BEAT_SCHEDULE = {
    'activate-scheduled-work-orders': {
        'task': 'apps.core.tasks.activate_scheduled_work_orders',
        'schedule': crontab(minute=0),  # Hourly
    },
    'replenish-rule-schedules': {
        'task': 'apps.core.tasks.replenish_rule_schedules',
        'schedule': crontab(hour=2, minute=30),  # Daily
    },
}

# Authentication
SERVICE_NAME = 'maintenance-service'
SERVICE_AUTH_TOKEN = os.environ.get('SERVICE_AUTH_TOKEN', 'dev-service-token')
JWT_SETTINGS = {
    'ALGORITHM': os.environ.get('JWT_ALGORITHM', 'HS256'),
    'SIGNING_KEY': os.environ.get('JWT_SECRET_KEY', SECRET_KEY),
    'VERIFYING_KEY': os.environ.get('JWT_VERIFYING_KEY', os.environ.get('JWT_SECRET_KEY', SECRET_KEY)),
    'ISSUER': os.environ.get('JWT_ISSUER', 'maintenance-identity'),
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=15),
}

# Collaborating services
SERVICE_URLS = {
    'booking-service': os.environ.get('BOOKING_SERVICE_URL', 'http://booking-service:8000'),
    'asset-service': os.environ.get('ASSET_SERVICE_URL', 'http://asset-service:8000'),
}

# Maintenance scheduling policy
MAINTENANCE_SETTINGS = {
    # Number of future occurrences pre-generated per rule
    'MATERIALIZATION_OCCURRENCES': int(os.environ.get('MAINTENANCE_MATERIALIZATION_OCCURRENCES', 12)),
    # Occurrences beyond this many months after the anchor are not generated
    'MAX_HORIZON_MONTHS': int(os.environ.get('MAINTENANCE_MAX_HORIZON_MONTHS', 24)),
    'DEFAULT_HOLD_COLOR': os.environ.get('MAINTENANCE_DEFAULT_HOLD_COLOR', '#fab005'),
    'HOLD_BOOKING_STATUS': 'maintenance-hold',
    'AUTOMATION_ACTOR_NAME': 'Maintenance Scheduler',
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'filters': {
        'request_id': {
            '()': 'shared.common.middleware.RequestIDLogFilter',
        },
    },
    'formatters': {
        'json': {
            '()': 'pythonjsonlogger.jsonlogger.JsonFormatter',
            'format': '%(asctime)s %(levelname)s %(name)s %(request_id)s %(message)s'
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
            'filters': ['request_id'],
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
