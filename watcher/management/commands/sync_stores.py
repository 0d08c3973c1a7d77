"""
Management command to sync stores once.

Usage:
    python manage.py sync_stores
    python manage.py sync_stores --store <store_id>
"""

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from watcher.services.errors import SyncError
from watcher.services.sync_orchestrator import SyncStatus, get_orchestrator


class Command(BaseCommand):
    """Run one sync pass over all stores, or over a single store."""

    help = "Fetch store catalogs and record changes"

    def add_arguments(self, parser):
        parser.add_argument(
            "--store",
            help="Sync only the store with this id",
        )

    def handle(self, *args, **options):
        orchestrator = get_orchestrator()

        if options["store"]:
            try:
                result = async_to_sync(orchestrator.sync_store)(options["store"])
            except SyncError as e:
                raise CommandError(e.description) from e
            self.stdout.write(f"{result.status.value}: {len(result.events)} events")
            return

        summary = async_to_sync(orchestrator.sync_all_stores)()
        for outcome in summary.outcomes:
            line = f"  {outcome.store_name}: {outcome.status.value}"
            if outcome.status is SyncStatus.COMPLETED:
                self.stdout.write(f"{line} ({outcome.events_count} events)")
            elif outcome.status is SyncStatus.FAILED:
                self.stdout.write(self.style.ERROR(f"{line} - {outcome.error}"))
            else:
                self.stdout.write(self.style.WARNING(line))

        style = self.style.ERROR if summary.failed else self.style.SUCCESS
        self.stdout.write(style(
            f"Synced {len(summary.completed)}/{len(summary.outcomes)} stores, "
            f"{summary.total_events} events"
        ))
