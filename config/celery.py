"""
Celery configuration for Rinkside.

Runs venue discovery batches off the request path and sweeps the review
queue on a beat schedule.
"""

import os
from celery import Celery

# Set Django settings module before importing anything else
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('rinkside')

# Load config from Django settings with CELERY_ prefix
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks in all INSTALLED_APPS
app.autodiscover_tasks()
