"""
Tests for the Celery task wrappers and management commands.
"""

from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from watcher.fetchers.errors import NetworkUnavailable
from watcher.models import Store

DOMAIN = "shop.example.com"


@pytest.fixture
def patched_orchestrator(orchestrator):
    with patch("watcher.tasks.get_orchestrator", return_value=orchestrator), \
            patch("watcher.management.commands.add_store.get_orchestrator", return_value=orchestrator), \
            patch("watcher.management.commands.sync_stores.get_orchestrator", return_value=orchestrator), \
            patch("watcher.management.commands.prune_history.get_orchestrator", return_value=orchestrator):
        yield orchestrator


@pytest.mark.django_db(transaction=True)
class TestTasks:

    def test_sync_all_stores_task(self, patched_orchestrator, client_factory, remote_product):
        from watcher.tasks import sync_all_stores

        client_factory.catalogs[DOMAIN] = [remote_product(1)]
        call_command("add_store", DOMAIN, stdout=StringIO())
        client_factory.catalogs[DOMAIN] = [remote_product(1), remote_product(2)]

        result = sync_all_stores.apply().get()

        assert result["status"] == "completed"
        assert result["stores"] == 1
        assert result["events"] == 1

    def test_sync_store_task_reports_failure(self, patched_orchestrator, client_factory, remote_product):
        from watcher.tasks import sync_store

        client_factory.catalogs[DOMAIN] = [remote_product(1)]
        call_command("add_store", DOMAIN, stdout=StringIO())
        store = Store.objects.get()
        client_factory.errors[DOMAIN] = NetworkUnavailable(domain=DOMAIN)

        result = sync_store.apply(args=[str(store.id)]).get()

        assert result["status"] == "failed"
        assert result["kind"] == "fetch_failed"

    def test_retention_task(self, patched_orchestrator):
        from watcher.tasks import run_retention_maintenance

        result = run_retention_maintenance.apply().get()

        assert result == {"status": "completed", "events_deleted": 0, "snapshots_deleted": 0}


@pytest.mark.django_db(transaction=True)
class TestCommands:

    def test_add_store(self, patched_orchestrator, client_factory, remote_product):
        client_factory.catalogs[DOMAIN] = [remote_product(1), remote_product(2)]
        out = StringIO()

        call_command("add_store", f"https://{DOMAIN}", "--name", "Example", stdout=out)

        assert "Added Example (shop.example.com) with 2 products" in out.getvalue()
        assert Store.objects.get().name == "Example"

    def test_add_store_failure(self, patched_orchestrator, client_factory):
        client_factory.errors[DOMAIN] = NetworkUnavailable(domain=DOMAIN)

        with pytest.raises(CommandError):
            call_command("add_store", DOMAIN, stdout=StringIO())

    def test_sync_stores(self, patched_orchestrator, client_factory, remote_product):
        client_factory.catalogs[DOMAIN] = [remote_product(1)]
        call_command("add_store", DOMAIN, stdout=StringIO())
        out = StringIO()

        call_command("sync_stores", stdout=out)

        assert "shop: completed (0 events)" in out.getvalue()
        assert "Synced 1/1 stores" in out.getvalue()

    def test_sync_single_store(self, patched_orchestrator, client_factory, remote_product):
        client_factory.catalogs[DOMAIN] = [remote_product(1)]
        call_command("add_store", DOMAIN, stdout=StringIO())
        store = Store.objects.get()
        out = StringIO()

        call_command("sync_stores", "--store", str(store.id), stdout=out)

        assert "completed: 0 events" in out.getvalue()

    def test_prune_history(self, patched_orchestrator):
        out = StringIO()

        call_command("prune_history", stdout=out)

        assert "Deleted 0 events and 0 snapshots" in out.getvalue()

        call_command("prune_history", "--snapshots-older-than", "30", stdout=out)
        assert "Deleted 0 snapshots older than 30 days" in out.getvalue()


class TestBeatSchedule:

    def test_sync_schedule_uses_configured_interval(self, settings):
        from datetime import timedelta

        from config.celery import SYNC_INTERVAL_MINUTES, app

        entry = app.conf.beat_schedule["sync-all-stores"]

        assert entry["task"] == "watcher.tasks.sync_all_stores"
        assert entry["schedule"] == timedelta(minutes=SYNC_INTERVAL_MINUTES)
        assert SYNC_INTERVAL_MINUTES == max(settings.WATCHER_SYNC_INTERVAL_MINUTES, 5)
