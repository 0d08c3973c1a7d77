"""
Management command to apply retention to events and snapshots.

Usage:
    python manage.py prune_history
    python manage.py prune_history --snapshots-older-than 180
"""

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from watcher.services.sync_orchestrator import get_orchestrator


class Command(BaseCommand):
    """Run retention maintenance, or prune snapshots by an explicit age."""

    help = "Delete old change events and variant snapshots"

    def add_arguments(self, parser):
        parser.add_argument(
            "--snapshots-older-than",
            type=int,
            default=None,
            metavar="DAYS",
            help="Delete snapshots older than DAYS regardless of preferences",
        )

    def handle(self, *args, **options):
        orchestrator = get_orchestrator()
        days = options["snapshots_older_than"]

        if days is not None:
            cutoff = timezone.now() - timedelta(days=days)
            deleted = orchestrator.delete_old_snapshots(cutoff)
            self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} snapshots older than {days} days"))
            return

        result = orchestrator.run_retention_maintenance()
        self.stdout.write(self.style.SUCCESS(
            f"Deleted {result.events_deleted} events and {result.snapshots_deleted} snapshots"
        ))
