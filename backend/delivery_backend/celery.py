"""Celery application for background offer sweeping."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "delivery_backend.settings.base")

app = Celery("delivery_backend")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
