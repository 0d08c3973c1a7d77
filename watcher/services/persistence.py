"""
Persistence Gateway - the single writer boundary for watcher data.

Every mutation, and every read a diff compares against, runs inside
``writer()``: a process-wide re-entrant lock around ``transaction.atomic()``.
From async code, ``write()`` hops onto the thread-sensitive executor so all
writes share one thread and one connection; ``read()`` serves display
queries from a separate worker thread without taking the lock.

Display reads return DTOs (see ``watcher.services.dto``), never model
instances.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar
from uuid import UUID

from asgiref.sync import sync_to_async
from django.conf import settings
from django.db import close_old_connections, transaction
from django.utils import timezone

from watcher.fetchers.types import RemoteProduct, RemoteVariant
from watcher.models import (
    PRICE_CHANGE_TYPES,
    PRODUCT_CHANGE_TYPES,
    STOCK_CHANGE_TYPES,
    ChangeEvent,
    Product,
    Store,
    Variant,
    VariantSnapshot,
    make_search_key,
)
from watcher.services.dto import ChangeEventDTO, ProductDTO, StoreDTO

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChangeKindGroup(str, Enum):
    """Activity feed filter groups."""

    ALL = "all"
    PRICE = "price"
    STOCK = "stock"
    PRODUCT = "product"

    @property
    def change_types(self) -> Optional[Tuple[str, ...]]:
        if self is ChangeKindGroup.PRICE:
            return tuple(PRICE_CHANGE_TYPES)
        if self is ChangeKindGroup.STOCK:
            return tuple(STOCK_CHANGE_TYPES)
        if self is ChangeKindGroup.PRODUCT:
            return tuple(PRODUCT_CHANGE_TYPES)
        return None


class StockScope(str, Enum):
    ALL = "all"
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"


class ProductSort(str, Enum):
    NAME = "name"
    PRICE_LOW_HIGH = "price_asc"
    PRICE_HIGH_LOW = "price_desc"
    RECENTLY_ADDED = "recent"

    @property
    def ordering(self) -> Tuple[str, ...]:
        if self is ProductSort.PRICE_LOW_HIGH:
            return ("cached_price", "id")
        if self is ProductSort.PRICE_HIGH_LOW:
            return ("-cached_price", "id")
        if self is ProductSort.RECENTLY_ADDED:
            return ("-first_seen_at", "-id")
        return ("title", "id")


@dataclass(frozen=True)
class EventFilter:
    """
    Predicate over ChangeEvents.

    ``kinds`` takes precedence over ``kind_group`` when both are given.
    """

    store_id: Optional[UUID] = None
    kind_group: ChangeKindGroup = ChangeKindGroup.ALL
    kinds: Optional[Tuple[str, ...]] = None
    start_date: Optional[datetime] = None
    unread_only: bool = False

    def change_types(self) -> Optional[Tuple[str, ...]]:
        if self.kinds:
            return tuple(self.kinds)
        return ChangeKindGroup(self.kind_group).change_types

    def apply(self, queryset):
        if self.store_id is not None:
            queryset = queryset.filter(store_id=self.store_id)
        types = self.change_types()
        if types is not None:
            queryset = queryset.filter(change_type__in=types)
        if self.start_date is not None:
            queryset = queryset.filter(occurred_at__gte=self.start_date)
        if self.unread_only:
            queryset = queryset.filter(is_read=False)
        return queryset


class PersistenceGateway:
    """
    Serialized access to the watcher tables.

    Mutating methods take the writer themselves, so they are safe to call
    directly from synchronous code (management commands, API views) as
    well as from inside a larger ``writer()`` block, where they join the
    surrounding transaction.
    """

    def __init__(self, yield_every: Optional[int] = None):
        self._lock = threading.RLock()
        self.yield_every = yield_every or getattr(settings, "WATCHER_YIELD_EVERY", 50)

    # ------------------------------------------------------------------
    # Execution contexts
    # ------------------------------------------------------------------

    @contextmanager
    def writer(self):
        """Hold the writer lock for the duration of one atomic transaction."""
        with self._lock:
            with transaction.atomic():
                yield

    async def write(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run ``fn`` inside the writer on the shared sync thread."""

        def run():
            with self.writer():
                return fn(*args, **kwargs)

        return await sync_to_async(run, thread_sensitive=True)()

    async def read(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run a read-only ``fn`` on a worker thread, outside the writer."""

        def run():
            try:
                return fn(*args, **kwargs)
            finally:
                close_old_connections()

        return await sync_to_async(run, thread_sensitive=False)()

    def checkpoint(self) -> None:
        """
        Yield the GIL between diff chunks.

        The writer lock and the open transaction stay held. Display reads are
        not blocked by them because ``read()`` never takes the lock and
        SQLite readers see the last committed state.
        """
        time.sleep(0)

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    def create_store(self, name: str, domain: str) -> Store:
        with self.writer():
            return Store.objects.create(name=name, domain=domain)

    def load_store(self, store_id) -> Optional[Store]:
        """Model instance for use inside the writer."""
        return Store.objects.filter(pk=store_id).first()

    def get_store(self, store_id) -> Optional[StoreDTO]:
        store = self.load_store(store_id)
        return StoreDTO.from_model(store) if store else None

    def list_stores(self, order_by: str = "-added_at") -> List[StoreDTO]:
        return [StoreDTO.from_model(s) for s in Store.objects.order_by(order_by)]

    def list_store_ids(self) -> List[UUID]:
        return list(Store.objects.order_by("-added_at").values_list("id", flat=True))

    def set_last_fetched(self, store: Store, when: Optional[datetime] = None) -> None:
        with self.writer():
            store.last_fetched_at = when or timezone.now()
            store.save(update_fields=["last_fetched_at"])

    def delete_store(self, store_id) -> bool:
        """Delete a store and, by cascade, everything it owns."""
        with self.writer():
            deleted, _ = Store.objects.filter(pk=store_id).delete()
        if deleted:
            logger.info(f"Deleted store {store_id} ({deleted} rows)")
        return bool(deleted)

    # ------------------------------------------------------------------
    # Products and variants
    # ------------------------------------------------------------------

    def products_by_external_id(self, store: Store) -> Dict[int, Product]:
        """
        Every product of the store keyed by external id, removed ones included.

        Variants are prefetched so the diff does not query per product.
        """
        products = Product.objects.filter(store=store).prefetch_related("variants")
        return {p.external_id: p for p in products}

    def upsert_product(
        self,
        store: Store,
        remote: RemoteProduct,
        existing: Optional[Product] = None,
    ) -> Tuple[Product, bool]:
        """
        Insert or update a product by external id.

        Looks the row up including removed products, and clears
        ``is_removed`` on a match.

        Returns:
            (product, created)
        """
        with self.writer():
            if existing is None:
                existing = Product.objects.filter(store=store, external_id=remote.id).first()

            if existing is None:
                product = Product(
                    store=store,
                    external_id=remote.id,
                    handle=remote.handle,
                    title=remote.title,
                    vendor=remote.vendor,
                    product_type=remote.product_type,
                    image_urls=list(remote.image_urls),
                )
                product.refresh_listing_cache(variants=[], save=False)
                product.save()
                return product, True

            existing.handle = remote.handle
            existing.title = remote.title
            existing.vendor = remote.vendor
            existing.product_type = remote.product_type
            existing.image_urls = list(remote.image_urls)
            existing.is_removed = False
            existing.save(update_fields=[
                "handle", "title", "vendor", "product_type", "image_urls", "is_removed",
            ])
            return existing, False

    def upsert_variant(
        self,
        product: Product,
        remote: RemoteVariant,
        existing: Optional[Variant] = None,
    ) -> Tuple[Variant, bool]:
        """Insert or update a variant by external id. Returns (variant, created)."""
        with self.writer():
            if existing is None:
                existing = Variant.objects.filter(product=product, external_id=remote.id).first()

            if existing is None:
                variant = Variant.objects.create(
                    product=product,
                    external_id=remote.id,
                    title=remote.title,
                    sku=remote.sku,
                    price=remote.price,
                    compare_at_price=remote.compare_at_price,
                    available=remote.available,
                    position=remote.position,
                )
                return variant, True

            existing.title = remote.title
            existing.sku = remote.sku
            existing.price = remote.price
            existing.compare_at_price = remote.compare_at_price
            existing.available = remote.available
            existing.position = remote.position
            existing.save(update_fields=[
                "title", "sku", "price", "compare_at_price", "available", "position",
            ])
            return existing, False

    def delete_variants(self, variant_ids: Iterable[int]) -> int:
        ids = list(variant_ids)
        if not ids:
            return 0
        with self.writer():
            deleted, _ = Variant.objects.filter(pk__in=ids).delete()
        return deleted

    def mark_removed(self, products: Sequence[Product]) -> int:
        """Soft-delete products; their variants and history are kept."""
        ids = [p.pk for p in products]
        if not ids:
            return 0
        with self.writer():
            updated = Product.objects.filter(pk__in=ids).update(is_removed=True)
        for product in products:
            product.is_removed = True
        return updated

    def active_products(self, store: Store) -> List[Product]:
        return list(
            Product.objects.filter(store=store, is_removed=False).order_by("first_seen_at", "id")
        )

    def _product_queryset(self, store_id, search: str = "", stock_scope=StockScope.ALL):
        queryset = Product.objects.filter(store_id=store_id, is_removed=False)
        query = make_search_key(search.strip())
        if query:
            queryset = queryset.filter(title_search_key__contains=query)
        scope = StockScope(stock_scope)
        if scope is StockScope.IN_STOCK:
            queryset = queryset.filter(cached_is_available=True)
        elif scope is StockScope.OUT_OF_STOCK:
            queryset = queryset.filter(cached_is_available=False)
        return queryset

    def query_products(
        self,
        store_id,
        search: str = "",
        stock_scope=StockScope.ALL,
        sort=ProductSort.NAME,
        offset: int = 0,
        limit: int = 50,
    ) -> List[ProductDTO]:
        """Active products of a store, filtered and sorted in the database."""
        queryset = self._product_queryset(store_id, search, stock_scope)
        queryset = queryset.order_by(*ProductSort(sort).ordering)
        return [ProductDTO.from_model(p) for p in queryset[offset:offset + limit]]

    def count_products(self, store_id, search: str = "", stock_scope=StockScope.ALL) -> int:
        return self._product_queryset(store_id, search, stock_scope).count()

    # ------------------------------------------------------------------
    # Snapshots and events
    # ------------------------------------------------------------------

    def insert_snapshots(self, snapshots: Sequence[VariantSnapshot]) -> int:
        if not snapshots:
            return 0
        with self.writer():
            VariantSnapshot.objects.bulk_create(snapshots)
        return len(snapshots)

    def insert_events(self, events: Sequence[ChangeEvent]) -> int:
        if not events:
            return 0
        with self.writer():
            ChangeEvent.objects.bulk_create(events)
        return len(events)

    def delete_snapshots_before(self, cutoff: datetime) -> int:
        with self.writer():
            deleted, _ = VariantSnapshot.objects.filter(captured_at__lt=cutoff).delete()
        return deleted

    def delete_events_before(self, cutoff: datetime) -> int:
        with self.writer():
            deleted, _ = ChangeEvent.objects.filter(occurred_at__lt=cutoff).delete()
        return deleted

    def delete_all_events(self) -> int:
        with self.writer():
            deleted, _ = ChangeEvent.objects.all().delete()
        logger.info(f"Deleted all events ({deleted})")
        return deleted

    def query_events(
        self,
        event_filter: Optional[EventFilter] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> List[ChangeEventDTO]:
        """A page of events, newest first."""
        queryset = (event_filter or EventFilter()).apply(ChangeEvent.objects.all())
        queryset = queryset.select_related("store").order_by("-occurred_at", "id")
        events = [ChangeEventDTO.from_model(e) for e in queryset[offset:offset + limit]]
        logger.debug(f"query_events: {len(events)} events, offset={offset}")
        return events

    def count_events(self, event_filter: Optional[EventFilter] = None) -> int:
        return (event_filter or EventFilter()).apply(ChangeEvent.objects.all()).count()

    def unread_count(self, store_id=None) -> int:
        return self.count_events(EventFilter(store_id=store_id, unread_only=True))

    def mark_event_read(self, event_id) -> bool:
        with self.writer():
            updated = ChangeEvent.objects.filter(pk=event_id, is_read=False).update(is_read=True)
        return bool(updated)

    def mark_events_read(self, event_ids: Iterable) -> int:
        ids = list(event_ids)
        if not ids:
            return 0
        with self.writer():
            updated = ChangeEvent.objects.filter(pk__in=ids, is_read=False).update(is_read=True)
        logger.debug(f"Marked {updated} events as read")
        return updated

    def mark_all_read(self, event_filter: Optional[EventFilter] = None) -> int:
        """Mark every event matching the filter (default: all events) as read."""
        with self.writer():
            queryset = (event_filter or EventFilter()).apply(ChangeEvent.objects.all())
            updated = queryset.filter(is_read=False).update(is_read=True)
        logger.debug(f"Marked {updated} events as read")
        return updated

    def menu_bar_events(self, limit: int = 10) -> List[ChangeEventDTO]:
        """Unread events if there are any, otherwise the most recent ones."""
        unread = self.query_events(EventFilter(unread_only=True), limit=limit)
        if unread:
            return unread
        return self.query_events(EventFilter(), limit=limit)


_gateway: Optional[PersistenceGateway] = None
_gateway_lock = threading.Lock()


def get_gateway() -> PersistenceGateway:
    """Process-wide gateway; there is exactly one writer per process."""
    global _gateway
    if _gateway is None:
        with _gateway_lock:
            if _gateway is None:
                _gateway = PersistenceGateway()
    return _gateway
