"""
Diff Engine - reconcile a fetched catalog against stored products.

Products and variants are matched by the origin's stable ids. A product
missing from the fetch is soft-deleted; one that comes back is revived
on the same row. Each observed price or availability transition yields
one ChangeEvent and one VariantSnapshot.

All work happens inside the persistence writer, so "what was compared"
and "what was written" come from the same transaction.
"""

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from django.utils import timezone

from watcher.fetchers.types import RemoteProduct, RemoteVariant
from watcher.models import ChangeEvent, ChangeMagnitude, ChangeType, Product, Store, Variant
from watcher.services.history_tracker import HistoryTracker
from watcher.services.persistence import PersistenceGateway, get_gateway

logger = logging.getLogger(__name__)

MEDIUM_CHANGE_PCT = Decimal("10")
LARGE_CHANGE_PCT = Decimal("25")


def classify_magnitude(old_price: Decimal, new_price: Decimal) -> str:
    """
    Bucket a price change by its percentage of the old price.

    small < 10% <= medium <= 25% < large. A change away from a zero price
    has no percentage and counts as large.
    """
    if old_price == 0:
        return ChangeMagnitude.LARGE

    pct = abs(new_price - old_price) / abs(old_price) * 100
    if pct > LARGE_CHANGE_PCT:
        return ChangeMagnitude.LARGE
    if pct >= MEDIUM_CHANGE_PCT:
        return ChangeMagnitude.MEDIUM
    return ChangeMagnitude.SMALL


def format_price(value: Decimal) -> str:
    """USD display form: Decimal("1234.5") -> "$1,234.50"."""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


@dataclass
class ReconcileResult:
    """Events created by one reconcile pass plus the products still listed."""

    events: List[ChangeEvent] = field(default_factory=list)
    active_products: List[Product] = field(default_factory=list)
    created_count: int = 0
    removed_count: int = 0
    resurrected_count: int = 0
    snapshot_count: int = 0


class DiffEngine:
    """
    Reconciles one store's fetched catalog with its stored products.

    Usage:
        engine = DiffEngine()
        result = engine.reconcile(store, remote_products)
    """

    def __init__(
        self,
        gateway: Optional[PersistenceGateway] = None,
        history: Optional[HistoryTracker] = None,
        yield_every: Optional[int] = None,
    ):
        self.gateway = gateway or get_gateway()
        self.history = history or HistoryTracker(self.gateway)
        self.yield_every = yield_every or self.gateway.yield_every

    def reconcile(
        self,
        store: Store,
        fetched: Sequence[RemoteProduct],
        initial_import: bool = False,
    ) -> ReconcileResult:
        """
        Apply a complete fetched catalog to the store.

        Args:
            store: Store being synced
            fetched: Every product the origin currently lists
            initial_import: Insert everything without emitting events

        Returns:
            ReconcileResult with the persisted events, removed-product
            events first
        """
        start_time = time.time()
        result = ReconcileResult()

        with self.gateway.writer():
            existing_by_id = self.gateway.products_by_external_id(store)
            unique_fetched = self._dedupe(fetched)
            fetched_ids = set(unique_fetched)

            removed = [
                p for p in existing_by_id.values()
                if not p.is_removed and p.external_id not in fetched_ids
            ]
            if not initial_import:
                for product in removed:
                    result.events.append(self._make_event(
                        store,
                        ChangeType.PRODUCT_REMOVED,
                        product_title=product.title,
                    ))
            self.gateway.mark_removed(removed)
            result.removed_count = len(removed)

            snapshots = []
            now = timezone.now()

            for index, remote in enumerate(unique_fetched.values()):
                if index and index % self.yield_every == 0:
                    self.gateway.checkpoint()

                existing = existing_by_id.get(remote.id)
                if existing is None:
                    product = self._create_product(store, remote)
                    result.created_count += 1
                    if not initial_import:
                        result.events.append(self._make_event(
                            store,
                            ChangeType.NEW_PRODUCT,
                            product_title=remote.title,
                            product_external_id=remote.id,
                        ))
                else:
                    if existing.is_removed:
                        result.resurrected_count += 1
                        logger.debug(f"Reviving product {remote.id} in {store.domain}")
                    product = self._update_product(
                        store, existing, remote, result.events, snapshots, now, initial_import,
                    )
                result.active_products.append(product)

            result.snapshot_count = self.gateway.insert_snapshots(snapshots)
            self.gateway.insert_events(result.events)
            store.refresh_listing_cache(products=result.active_products)

        elapsed = time.time() - start_time
        logger.info(
            f"Reconciled {store.domain}: {len(result.active_products)} active, "
            f"{result.created_count} new, {result.removed_count} removed, "
            f"{result.resurrected_count} revived, {len(result.events)} events "
            f"in {elapsed:.2f}s"
        )
        return result

    def _dedupe(self, fetched: Sequence[RemoteProduct]) -> Dict[int, RemoteProduct]:
        """Feed order, first occurrence wins when pages overlap."""
        unique: Dict[int, RemoteProduct] = {}
        for remote in fetched:
            if remote.id in unique:
                logger.debug(f"Skipping duplicate product {remote.id} in fetched catalog")
                continue
            unique[remote.id] = remote
        return unique

    def _create_product(self, store: Store, remote: RemoteProduct) -> Product:
        product, _ = self.gateway.upsert_product(store, remote)
        variants = []
        seen = set()
        for remote_variant in remote.variants:
            if remote_variant.id in seen:
                continue
            seen.add(remote_variant.id)
            variant, _ = self.gateway.upsert_variant(product, remote_variant)
            variants.append(variant)
        product.refresh_listing_cache(variants=variants)
        return product

    def _update_product(
        self,
        store: Store,
        product: Product,
        remote: RemoteProduct,
        events: List[ChangeEvent],
        snapshots: list,
        now,
        initial_import: bool,
    ) -> Product:
        old_images = list(product.image_urls or [])
        existing_variants: Dict[int, Variant] = {v.external_id: v for v in product.variants.all()}

        # Updates title/handle/vendor/type/images and clears is_removed
        product, _ = self.gateway.upsert_product(store, remote, existing=product)

        kept: List[Variant] = []
        seen = set()
        for remote_variant in remote.variants:
            if remote_variant.id in seen:
                continue
            seen.add(remote_variant.id)

            variant = existing_variants.get(remote_variant.id)
            if variant is not None and not initial_import:
                events.extend(self._variant_events(store, product, variant, remote_variant))
                if self._snapshot_needed(variant, remote_variant):
                    snapshots.append(self.history.build_snapshot(
                        variant,
                        price=remote_variant.price,
                        compare_at_price=remote_variant.compare_at_price,
                        available=remote_variant.available,
                        captured_at=now,
                    ))

            variant, _ = self.gateway.upsert_variant(product, remote_variant, existing=variant)
            kept.append(variant)

        stale = [v.pk for ext_id, v in existing_variants.items() if ext_id not in seen]
        if stale:
            self.gateway.delete_variants(stale)

        new_images = list(remote.image_urls)
        if old_images != new_images and not initial_import:
            events.append(self._make_event(
                store,
                ChangeType.IMAGES_CHANGED,
                product_title=product.title,
                old_value=f"{len(old_images)} images",
                new_value=f"{len(new_images)} images",
                product_external_id=product.external_id,
            ))

        product.refresh_listing_cache(variants=kept)
        return product

    def _variant_events(
        self,
        store: Store,
        product: Product,
        variant: Variant,
        remote: RemoteVariant,
    ) -> List[ChangeEvent]:
        """Price event then availability event; must run before the variant is updated."""
        events = []

        if variant.price != remote.price:
            delta = remote.price - variant.price
            events.append(self._make_event(
                store,
                ChangeType.PRICE_DROPPED if delta < 0 else ChangeType.PRICE_INCREASED,
                product_title=product.title,
                variant_title=variant.title,
                old_value=format_price(variant.price),
                new_value=format_price(remote.price),
                price_change=delta,
                magnitude=classify_magnitude(variant.price, remote.price),
                product_external_id=product.external_id,
            ))

        if variant.available != remote.available:
            events.append(self._make_event(
                store,
                ChangeType.BACK_IN_STOCK if remote.available else ChangeType.OUT_OF_STOCK,
                product_title=product.title,
                variant_title=variant.title,
                product_external_id=product.external_id,
            ))

        return events

    def _snapshot_needed(self, variant: Variant, remote: RemoteVariant) -> bool:
        return (
            variant.price != remote.price
            or variant.compare_at_price != remote.compare_at_price
            or variant.available != remote.available
        )

    def _make_event(
        self,
        store: Store,
        change_type: str,
        product_title: str,
        variant_title: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        price_change: Optional[Decimal] = None,
        magnitude: str = ChangeMagnitude.MEDIUM,
        product_external_id: Optional[int] = None,
    ) -> ChangeEvent:
        return ChangeEvent(
            store=store,
            change_type=change_type,
            magnitude=magnitude,
            product_title=product_title,
            variant_title=variant_title,
            old_value=old_value,
            new_value=new_value,
            price_change=price_change,
            product_external_id=product_external_id,
        )
