"""
Celery configuration for the Django application.

Workers run the post-commit upload pipeline (deferred mode), assemble batch
download archives and execute the periodic cleanup sweeps scheduled through
django-celery-beat.

Archive assembly is routed to its own ``archives`` queue (see
CELERY_TASK_ROUTES in settings) so its concurrency can be capped
independently of upload processing:

    celery -A config worker -Q celery
    celery -A config worker -Q archives --concurrency=2
    celery -A config beat

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up media/tasks.py
app.autodiscover_tasks()
