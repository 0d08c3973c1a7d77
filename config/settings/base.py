"""
Django base settings for the Catalog Watcher agent.

This module contains settings common to all environments.
For more information on this file, see
https://docs.djangoproject.com/en/4.2/topics/settings/
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# Quick-start development settings - unsuitable for production
# See https://docs.djangoproject.com/en/4.2/howto/deployment/checklist/

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "django-insecure-watcher-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "drf_spectacular",
    # Local apps
    "watcher",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases
# Configured in environment-specific settings (development.py, production.py, test.py)

DATABASES = {
    # Override in environment-specific settings
}


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/4.2/howto/static-files/

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
# https://docs.djangoproject.com/en/4.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Cache Configuration
# https://docs.djangoproject.com/en/4.2/topics/cache/
# Used by the preferences service; configured in environment-specific settings

CACHES = {
    # Override in environment-specific settings
}


# Celery Configuration
# https://docs.celeryproject.org/en/stable/django/first-steps-with-django.html

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes max for a full sync cycle

# Task routing - all catalog traffic goes through one queue so syncs stay sequential
CELERY_TASK_ROUTES = {
    "watcher.tasks.sync_*": {"queue": "sync"},
    "watcher.tasks.run_retention_maintenance": {"queue": "default"},
}


# Django REST Framework Configuration
# https://www.django-rest-framework.org/
# Local single-user agent: the consumer API is not authenticated.

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "UNAUTHENTICATED_USER": None,
}


# DRF Spectacular (OpenAPI/Swagger) Configuration
# https://drf-spectacular.readthedocs.io/

SPECTACULAR_SETTINGS = {
    "TITLE": "Catalog Watcher API",
    "DESCRIPTION": "Store monitoring, change events and sync control for the local watcher agent",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}


# Logging Configuration
# https://docs.djangoproject.com/en/4.2/topics/logging/

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
        "watcher": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
    },
}


# Sentry Configuration
# https://docs.sentry.io/platforms/python/guides/django/

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.2"))

if SENTRY_DSN:
    import sentry_sdk

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        send_default_pii=False,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        environment=SENTRY_ENVIRONMENT,
    )


# Watcher Configuration

# Products requested per catalog page (the remote endpoint caps this at 250)
WATCHER_PAGE_SIZE = int(os.getenv("WATCHER_PAGE_SIZE", "250"))

# Timeout for each catalog page request (seconds)
WATCHER_REQUEST_TIMEOUT = float(os.getenv("WATCHER_REQUEST_TIMEOUT", "30"))

# Upper bound on pages fetched per sync, guards against origins that never return an empty page
WATCHER_MAX_PAGES = int(os.getenv("WATCHER_MAX_PAGES", "100"))

# Local rate gate: minimum seconds between two syncs of the same store
WATCHER_MIN_SYNC_INTERVAL = float(os.getenv("WATCHER_MIN_SYNC_INTERVAL", "60"))

# Default background sync interval (minutes); never below the floor
WATCHER_SYNC_INTERVAL_MINUTES = int(os.getenv("WATCHER_SYNC_INTERVAL_MINUTES", "30"))
WATCHER_SYNC_INTERVAL_FLOOR_MINUTES = 5

# Products processed between writer checkpoints during a diff
WATCHER_YIELD_EVERY = int(os.getenv("WATCHER_YIELD_EVERY", "50"))

# Default retention windows (days)
WATCHER_EVENT_RETENTION_DAYS = int(os.getenv("WATCHER_EVENT_RETENTION_DAYS", "90"))
WATCHER_SNAPSHOT_RETENTION_DAYS = int(os.getenv("WATCHER_SNAPSHOT_RETENTION_DAYS", "365"))

# Consecutive sync failures per store before a Sentry alert is raised
WATCHER_FAILURE_THRESHOLD = int(os.getenv("WATCHER_FAILURE_THRESHOLD", "5"))

# Dotted path of the notifier that receives dispatched event batches
WATCHER_NOTIFIER = os.getenv("WATCHER_NOTIFIER", "watcher.services.notification_bridge.LoggingNotifier")

# Extra attempts per page on timeouts, connection errors and 5xx responses
WATCHER_MAX_RETRIES = int(os.getenv("WATCHER_MAX_RETRIES", "2"))

# Count consecutive failures per store in Redis (CELERY_BROKER_URL)
WATCHER_TRACK_FAILURES = os.getenv("WATCHER_TRACK_FAILURES", "True") == "True"
