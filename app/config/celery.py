"""
Celery configuration for the billing backend.

Celery runs operator-triggered background work, currently the replay of
stored Stripe webhook events (see billing.tasks). Nothing is scheduled
periodically: a failed reconciliation is only retried when someone asks.

Redis is the broker and result backend in deployments. Tasks are
auto-discovered from every installed Django app.

Usage:
    from billing.tasks import replay_webhook_event

    replay_webhook_event.delay(str(webhook_event.id))

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
