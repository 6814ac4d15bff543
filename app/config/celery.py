"""
Celery configuration for the chat backend.

Celery runs the work that should not hold up a WebSocket handler or an HTTP
request, such as handing messages to the push-notification pipeline for
members who are offline when a message arrives.

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    from chat.tasks import send_offline_notification

    send_offline_notification.delay(str(user.id), chat.id, message.id, sender.name)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# Load configuration from Django settings
# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
