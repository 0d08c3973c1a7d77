"""
Immutable snapshots of persisted rows.

Anything that leaves the persistence writer (events handed to the
notification bridge, lists returned to the API) is copied into one of
these first, so no caller ever holds a live model instance from another
thread.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID

from django.utils import timezone


@dataclass(frozen=True)
class StoreDTO:
    id: UUID
    name: str
    domain: str
    added_at: datetime
    last_fetched_at: Optional[datetime]
    product_count: int
    preview_image_urls: Tuple[str, ...]

    @classmethod
    def from_model(cls, store) -> "StoreDTO":
        return cls(
            id=store.id,
            name=store.name,
            domain=store.domain,
            added_at=store.added_at,
            last_fetched_at=store.last_fetched_at,
            product_count=store.cached_product_count,
            preview_image_urls=tuple(store.cached_preview_image_urls or ()),
        )

    def seconds_until_sync_allowed(self, min_interval: float, now: Optional[datetime] = None) -> float:
        """Seconds left before the local rate gate lets this store sync again."""
        if self.last_fetched_at is None:
            return 0.0
        now = now or timezone.now()
        elapsed = (now - self.last_fetched_at).total_seconds()
        return max(0.0, min_interval - elapsed)


@dataclass(frozen=True)
class ProductDTO:
    id: int
    store_id: UUID
    external_id: int
    handle: str
    title: str
    vendor: Optional[str]
    product_type: Optional[str]
    image_urls: Tuple[str, ...]
    price: Decimal
    is_available: bool
    is_removed: bool
    first_seen_at: datetime

    @classmethod
    def from_model(cls, product) -> "ProductDTO":
        return cls(
            id=product.pk,
            store_id=product.store_id,
            external_id=product.external_id,
            handle=product.handle,
            title=product.title,
            vendor=product.vendor,
            product_type=product.product_type,
            image_urls=tuple(product.image_urls or ()),
            price=product.cached_price,
            is_available=product.cached_is_available,
            is_removed=product.is_removed,
            first_seen_at=product.first_seen_at,
        )


@dataclass(frozen=True)
class ChangeEventDTO:
    id: UUID
    store_id: UUID
    store_name: str
    occurred_at: datetime
    change_type: str
    magnitude: str
    product_title: str
    variant_title: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]
    price_change: Optional[Decimal]
    is_read: bool
    product_external_id: Optional[int]

    @classmethod
    def from_model(cls, event, store_name: Optional[str] = None) -> "ChangeEventDTO":
        if store_name is None:
            store_name = event.store.name
        return cls(
            id=event.id,
            store_id=event.store_id,
            store_name=store_name,
            occurred_at=event.occurred_at,
            change_type=event.change_type,
            magnitude=event.magnitude,
            product_title=event.product_title,
            variant_title=event.variant_title,
            old_value=event.old_value,
            new_value=event.new_value,
            price_change=event.price_change,
            is_read=event.is_read,
            product_external_id=event.product_external_id,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class VariantSnapshotDTO:
    variant_id: int
    captured_at: datetime
    price: Decimal
    compare_at_price: Optional[Decimal]
    available: bool

    @classmethod
    def from_model(cls, snapshot) -> "VariantSnapshotDTO":
        return cls(
            variant_id=snapshot.variant_id,
            captured_at=snapshot.captured_at,
            price=snapshot.price,
            compare_at_price=snapshot.compare_at_price,
            available=snapshot.available,
        )
