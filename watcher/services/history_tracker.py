"""
History Tracker - point-in-time price and availability snapshots.

A snapshot is appended only when a sync sees a variant's price,
compare-at price or availability actually change, and it records the
values observed by that sync. Old snapshots are removed by age, never by
count.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from django.utils import timezone

from watcher.models import Variant, VariantSnapshot
from watcher.services.dto import VariantSnapshotDTO
from watcher.services.persistence import PersistenceGateway, get_gateway

logger = logging.getLogger(__name__)


class HistoryTracker:
    """Appends and prunes VariantSnapshots through the persistence gateway."""

    def __init__(self, gateway: Optional[PersistenceGateway] = None):
        self.gateway = gateway or get_gateway()

    def build_snapshot(
        self,
        variant: Variant,
        price: Decimal,
        compare_at_price: Optional[Decimal],
        available: bool,
        captured_at: Optional[datetime] = None,
    ) -> VariantSnapshot:
        """Unsaved snapshot, for batching with ``gateway.insert_snapshots``."""
        return VariantSnapshot(
            variant=variant,
            price=price,
            compare_at_price=compare_at_price,
            available=available,
            captured_at=captured_at or timezone.now(),
        )

    def record_snapshot(
        self,
        variant: Variant,
        price: Decimal,
        compare_at_price: Optional[Decimal],
        available: bool,
        captured_at: Optional[datetime] = None,
    ) -> VariantSnapshot:
        snapshot = self.build_snapshot(variant, price, compare_at_price, available, captured_at)
        self.gateway.insert_snapshots([snapshot])
        return snapshot

    def prune_snapshots(self, older_than: datetime) -> int:
        """
        Delete snapshots captured before ``older_than``.

        Returns:
            Number of snapshots deleted
        """
        deleted = self.gateway.delete_snapshots_before(older_than)
        if deleted:
            logger.info(f"Pruned {deleted} snapshots older than {older_than.isoformat()}")
        return deleted

    def price_history(self, variant_id: int) -> List[VariantSnapshotDTO]:
        """All snapshots of a variant, oldest first."""
        snapshots = VariantSnapshot.objects.filter(variant_id=variant_id).order_by("captured_at", "id")
        return [VariantSnapshotDTO.from_model(s) for s in snapshots]

    def recent_price_change(self, product) -> Optional[Decimal]:
        """
        Signed change between the two latest snapshots of the product's
        first variant.

        Returns None when there is no such pair or the price did not move.
        """
        variant = product.variants.order_by("position", "external_id").first()
        if variant is None:
            return None

        latest = list(variant.snapshots.order_by("-captured_at", "-id")[:2])
        if len(latest) < 2:
            return None

        change = latest[0].price - latest[1].price
        return change if change != 0 else None
