"""
Celery configuration for the Django application.

Runs the payments background work:
- Gateway callback completion (payments.tasks.complete_payment_callback)
- Periodic payout scheduling and processing, and the expired-hold sweep,
  scheduled through django-celery-beat's DatabaseScheduler

Redis is both the message broker and result backend. Tasks are
auto-discovered from the installed apps' tasks.py modules.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
