"""
Celery Configuration for FLEET-DISPATCH

The Celery app owns the broker connection settings; its connection and
producer pools carry the per-courier notification queues.
"""

import os
from celery import Celery

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'fleet_core.settings')

app = Celery('fleet_core')

# Load config from Django settings, using CELERY_ prefix
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks from all registered Django apps
app.autodiscover_tasks()
