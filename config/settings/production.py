"""
Production settings for the Catalog Watcher agent.

The agent runs as a single local process; state lives in one SQLite file
under WATCHER_DATA_DIR.
"""

import os
from pathlib import Path
from .base import *

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = False

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")

WATCHER_DATA_DIR = Path(os.getenv("WATCHER_DATA_DIR", BASE_DIR / "data"))
WATCHER_DATA_DIR.mkdir(parents=True, exist_ok=True)

# Production database - SQLite file owned by this process
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": WATCHER_DATA_DIR / "watcher.sqlite3",
        "CONN_MAX_AGE": 60,
        "OPTIONS": {
            "timeout": 30,
        },
    }
}

# Production Cache - local memory, preferences are per process
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "watcher",
    }
}

# Production Celery - only used when syncs are delegated to a worker
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# Production logging
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["watcher"]["level"] = "INFO"

# Security settings
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"
