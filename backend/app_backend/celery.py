"""Celery application configuration."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "app_backend.settings.settings")

app = Celery("app_backend")

# CELERY_* settings (broker, serializers, beat schedule) come from Django settings
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
