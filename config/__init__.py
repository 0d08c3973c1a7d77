"""Project configuration package for the Catalog Watcher agent."""

from .celery import app as celery_app

__all__ = ("celery_app",)
