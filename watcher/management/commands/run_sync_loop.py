"""
Management command to run the background sync loop in the foreground.

Usage:
    python manage.py run_sync_loop
    python manage.py run_sync_loop --interval 900

SIGINT or SIGTERM stops the loop.
"""

import asyncio
import logging
import signal

from django.core.management.base import BaseCommand

from watcher.services.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Sync all stores on an interval until interrupted."""

    help = "Run the periodic sync loop"

    def add_arguments(self, parser):
        parser.add_argument(
            "--interval",
            type=float,
            default=None,
            help="Seconds between cycles (default: preferences; never below the floor)",
        )

    def handle(self, *args, **options):
        asyncio.run(self._serve(options["interval"]))
        self.stdout.write(self.style.SUCCESS("Sync loop stopped"))

    async def _serve(self, interval):
        scheduler = SyncScheduler(interval_seconds=interval)
        stop = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        scheduler.start()
        self.stdout.write("Sync loop running, Ctrl+C to stop")
        try:
            await stop.wait()
        finally:
            await scheduler.stop()
