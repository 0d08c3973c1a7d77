"""
Management command to add a store and import its catalog.

Usage:
    python manage.py add_store shop.example.com
    python manage.py add_store https://shop.example.com --name "Example Shop"
"""

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from watcher.services.errors import SyncError
from watcher.services.persistence import get_gateway
from watcher.services.sync_orchestrator import get_orchestrator


class Command(BaseCommand):
    """Validate a storefront domain and import its catalog without events."""

    help = "Add a store to monitor and import its current catalog"

    def add_arguments(self, parser):
        parser.add_argument("domain", help="Store domain or URL")
        parser.add_argument(
            "--name",
            default="",
            help="Display name (default: first label of the domain)",
        )

    def handle(self, *args, **options):
        try:
            store_id = async_to_sync(get_orchestrator().add_store)(options["name"], options["domain"])
        except SyncError as e:
            raise CommandError(e.description) from e

        store = get_gateway().get_store(store_id)
        self.stdout.write(self.style.SUCCESS(
            f"Added {store.name} ({store.domain}) with {store.product_count} products [{store.id}]"
        ))
