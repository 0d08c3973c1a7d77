"""
Celery configuration for the Catalog Watcher agent.

The in-process scheduler (``manage.py run_sync_loop``) is the default way
to run background syncs. This Celery app is the alternative for setups
that already run a worker: beat triggers the same sync cycle and
retention sweep on a schedule taken from the environment.
"""

import os
from datetime import timedelta

from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("catalog_watcher")

# namespace='CELERY' means all celery-related configuration keys
# should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# A single sync queue keeps catalog syncs sequential (one worker, concurrency 1)
app.conf.task_queues = {
    "sync": {
        "exchange": "sync",
        "routing_key": "sync",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

app.conf.task_routes = {
    "watcher.tasks.sync_all_stores": {"queue": "sync"},
    "watcher.tasks.sync_store": {"queue": "sync"},
    "watcher.tasks.run_retention_maintenance": {"queue": "default"},
}

# Beat reads WATCHER_SYNC_INTERVAL_MINUTES (floor 5) once at startup. The
# user's sync_interval_minutes preference is only honored by run_sync_loop;
# restart beat after changing the environment value.
SYNC_INTERVAL_MINUTES = max(int(os.getenv("WATCHER_SYNC_INTERVAL_MINUTES", "30")), 5)

app.conf.beat_schedule = {
    "sync-all-stores": {
        "task": "watcher.tasks.sync_all_stores",
        "schedule": timedelta(minutes=SYNC_INTERVAL_MINUTES),
    },
    "retention-maintenance-daily": {
        "task": "watcher.tasks.run_retention_maintenance",
        "schedule": crontab(hour=3, minute=15),
    },
}
