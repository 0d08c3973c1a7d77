"""
Django models for the Catalog Watcher.

Models: Store, Product, Variant, VariantSnapshot, ChangeEvent, WatcherPreferences

A Store owns its Products and ChangeEvents; Products own Variants and
Variants own their VariantSnapshots. All ownership is cascade-delete.
Products are soft-deleted (``is_removed``) so history survives removal.
"""

import unicodedata
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class ChangeType(models.TextChoices):
    """Kinds of change detected between two catalog fetches."""

    PRICE_DROPPED = "priceDropped", "Price Dropped"
    PRICE_INCREASED = "priceIncreased", "Price Increased"
    BACK_IN_STOCK = "backInStock", "Back In Stock"
    OUT_OF_STOCK = "outOfStock", "Out Of Stock"
    NEW_PRODUCT = "newProduct", "New Product"
    PRODUCT_REMOVED = "productRemoved", "Product Removed"
    IMAGES_CHANGED = "imagesChanged", "Images Changed"


PRICE_CHANGE_TYPES = (ChangeType.PRICE_DROPPED, ChangeType.PRICE_INCREASED)
STOCK_CHANGE_TYPES = (ChangeType.BACK_IN_STOCK, ChangeType.OUT_OF_STOCK)
PRODUCT_CHANGE_TYPES = (ChangeType.NEW_PRODUCT, ChangeType.PRODUCT_REMOVED)


class ChangeMagnitude(models.TextChoices):
    """Size bucket of a price change, by percentage of the old price."""

    SMALL = "small", "Small (<10%)"
    MEDIUM = "medium", "Medium (10-25%)"
    LARGE = "large", "Large (>25%)"


class PriceThreshold(models.TextChoices):
    """Minimum price movement a user wants to be notified about."""

    ANY = "any", "Any amount"
    DOLLARS_5 = "dollars5", "At least $5"
    DOLLARS_10 = "dollars10", "At least $10"
    DOLLARS_25 = "dollars25", "At least $25"
    PERCENT_10 = "percent10", "At least 10%"
    PERCENT_25 = "percent25", "At least 25%"

    @property
    def min_dollars(self):
        return {
            "dollars5": Decimal("5"),
            "dollars10": Decimal("10"),
            "dollars25": Decimal("25"),
        }.get(self.value)

    @property
    def min_percent(self):
        return {"percent10": 10, "percent25": 25}.get(self.value)

    def is_satisfied_by(self, event) -> bool:
        """
        Whether a change event clears this threshold.

        Non-price events always pass. Percent thresholds use the event's
        magnitude bucket in place of the exact percentage.
        """
        if event.change_type not in PRICE_CHANGE_TYPES:
            return True

        if self.min_dollars is not None:
            if event.price_change is None:
                return True
            return abs(event.price_change) >= self.min_dollars

        if self.min_percent is not None:
            if event.magnitude == ChangeMagnitude.SMALL:
                return False
            if event.magnitude == ChangeMagnitude.MEDIUM:
                return self.min_percent <= 10
            return True

        return True


def make_search_key(text: str) -> str:
    """Case and accent insensitive form of a title, used for product search."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


class Store(models.Model):
    """
    A monitored storefront catalog.

    ``cached_product_count`` and ``cached_preview_image_urls`` are
    denormalized for list display and rebuilt after every successful sync.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200, help_text="Display name")
    domain = models.CharField(max_length=255, help_text="Catalog origin, e.g. shop.example.com")

    added_at = models.DateTimeField(default=timezone.now)
    last_fetched_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last successful catalog fetch",
    )

    # Denormalized listing fields
    cached_product_count = models.IntegerField(default=0)
    cached_preview_image_urls = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = "watcher_stores"
        ordering = ["-added_at"]

    def __str__(self):
        return f"{self.name} ({self.domain})"

    def refresh_listing_cache(self, products=None) -> None:
        """
        Recompute product count and preview images from active products.

        Args:
            products: Iterable of Products in display order. Defaults to the
                store's non-removed products ordered by first sighting.
        """
        if products is None:
            products = self.products.filter(is_removed=False).order_by("first_seen_at", "id")

        active = [p for p in products if not p.is_removed]
        self.cached_product_count = len(active)
        self.cached_preview_image_urls = [
            p.image_urls[0] for p in active if p.image_urls
        ][:3]
        self.save(update_fields=["cached_product_count", "cached_preview_image_urls"])


class Product(models.Model):
    """
    One catalog item, keyed by the origin's stable numeric id.

    Never hard-deleted by a sync: a product missing from a fetch is
    flagged ``is_removed`` and revived in place if it comes back.
    """

    store = models.ForeignKey(
        Store,
        on_delete=models.CASCADE,
        related_name="products",
    )
    external_id = models.BigIntegerField(help_text="Origin's stable product id")

    handle = models.CharField(max_length=255, blank=True)
    title = models.CharField(max_length=500)
    vendor = models.CharField(max_length=255, blank=True, null=True)
    product_type = models.CharField(max_length=255, blank=True, null=True)
    image_urls = models.JSONField(default=list, blank=True, help_text="Ordered image URLs")

    first_seen_at = models.DateTimeField(default=timezone.now)
    is_removed = models.BooleanField(default=False)

    # Denormalized listing fields, recomputed from variants
    cached_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    cached_is_available = models.BooleanField(default=False)
    title_search_key = models.CharField(max_length=500, blank=True, default="")

    class Meta:
        db_table = "watcher_products"
        ordering = ["first_seen_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["store", "external_id"],
                name="unique_product_external_id_per_store",
            ),
        ]
        indexes = [
            models.Index(fields=["store", "is_removed"], name="watcher_pro_store_i_4b1c2e_idx"),
            models.Index(fields=["store", "cached_is_available"], name="watcher_pro_store_i_8d5a71_idx"),
            models.Index(fields=["store", "cached_price"], name="watcher_pro_store_i_c3e9f0_idx"),
            models.Index(fields=["store", "title_search_key"], name="watcher_pro_store_i_1a7b36_idx"),
        ]

    def __str__(self):
        return f"{self.title} [{self.external_id}]"

    @property
    def primary_image_url(self):
        return self.image_urls[0] if self.image_urls else None

    def refresh_listing_cache(self, variants=None, save: bool = True) -> None:
        """
        Recompute cached price, availability and search key from variants.

        The cached price is the lowest-position variant's price; a product
        without variants caches price 0 and unavailable.
        """
        if variants is None:
            variants = list(self.variants.all())
        ordered = sorted(variants, key=lambda v: (v.position, v.external_id))

        self.cached_price = ordered[0].price if ordered else Decimal("0")
        self.cached_is_available = any(v.available for v in ordered)
        self.title_search_key = make_search_key(self.title)

        if save and self.pk:
            self.save(update_fields=["cached_price", "cached_is_available", "title_search_key"])


class Variant(models.Model):
    """One purchasable SKU of a product."""

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name="variants",
    )
    external_id = models.BigIntegerField(help_text="Origin's stable variant id")

    title = models.CharField(max_length=500)
    sku = models.CharField(max_length=255, blank=True, null=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    compare_at_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    available = models.BooleanField(default=False)
    position = models.IntegerField(default=1, validators=[MinValueValidator(0)])

    class Meta:
        db_table = "watcher_variants"
        ordering = ["position", "external_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "external_id"],
                name="unique_variant_external_id_per_product",
            ),
        ]

    def __str__(self):
        return f"{self.title} @ {self.price}"


class VariantSnapshot(models.Model):
    """
    Immutable point-in-time price and availability of a variant.

    Written only when a sync detects a change; removed only by the
    retention sweep.
    """

    variant = models.ForeignKey(
        Variant,
        on_delete=models.CASCADE,
        related_name="snapshots",
    )
    captured_at = models.DateTimeField(default=timezone.now)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    compare_at_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    available = models.BooleanField()

    class Meta:
        db_table = "watcher_variant_snapshots"
        ordering = ["captured_at", "id"]
        indexes = [
            models.Index(fields=["captured_at"], name="watcher_var_capture_5e2d90_idx"),
            models.Index(fields=["variant", "captured_at"], name="watcher_var_variant_9f4c12_idx"),
        ]

    def __str__(self):
        return f"{self.variant_id} {self.price} ({self.captured_at})"


class ChangeEvent(models.Model):
    """
    One detected change, as shown in the activity feed.

    Titles are copied at creation so the event still reads correctly
    after the product is removed. Only ``is_read`` is ever updated.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(
        Store,
        on_delete=models.CASCADE,
        related_name="change_events",
    )
    occurred_at = models.DateTimeField(default=timezone.now)
    change_type = models.CharField(max_length=20, choices=ChangeType.choices)
    magnitude = models.CharField(
        max_length=10,
        choices=ChangeMagnitude.choices,
        default=ChangeMagnitude.MEDIUM,
    )

    product_title = models.CharField(max_length=500)
    variant_title = models.CharField(max_length=500, null=True, blank=True)
    old_value = models.CharField(max_length=100, null=True, blank=True)
    new_value = models.CharField(max_length=100, null=True, blank=True)
    price_change = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    is_read = models.BooleanField(default=False)

    # Origin product id for navigation; null for removed products
    product_external_id = models.BigIntegerField(null=True, blank=True)

    class Meta:
        db_table = "watcher_change_events"
        ordering = ["-occurred_at"]
        indexes = [
            models.Index(fields=["store", "occurred_at"], name="watcher_cha_store_i_7c3a55_idx"),
            models.Index(fields=["change_type", "occurred_at"], name="watcher_cha_change__2b8e41_idx"),
            models.Index(fields=["is_read"], name="watcher_cha_is_read_6d0f83_idx"),
        ]

    def __str__(self):
        return f"{self.change_type}: {self.product_title}"

    @property
    def is_price_change(self) -> bool:
        return self.change_type in PRICE_CHANGE_TYPES


def default_sync_interval_minutes() -> int:
    return max(
        getattr(settings, "WATCHER_SYNC_INTERVAL_MINUTES", 30),
        getattr(settings, "WATCHER_SYNC_INTERVAL_FLOOR_MINUTES", 5),
    )


def default_event_retention_days() -> int:
    return getattr(settings, "WATCHER_EVENT_RETENTION_DAYS", 90)


def default_snapshot_retention_days() -> int:
    return getattr(settings, "WATCHER_SNAPSHOT_RETENTION_DAYS", 365)


class WatcherPreferences(models.Model):
    """
    User-editable settings, stored as a single row (pk=1).

    Read through ``watcher.services.preferences.PreferencesService``.
    """

    sync_interval_minutes = models.IntegerField(
        default=default_sync_interval_minutes,
        validators=[MinValueValidator(5)],
    )

    notifications_enabled = models.BooleanField(default=True)
    price_drop_threshold = models.CharField(
        max_length=20,
        choices=PriceThreshold.choices,
        default=PriceThreshold.ANY,
    )
    price_increase_threshold = models.CharField(
        max_length=20,
        choices=PriceThreshold.choices,
        default=PriceThreshold.ANY,
    )

    notify_price_dropped = models.BooleanField(default=True)
    notify_price_increased = models.BooleanField(default=True)
    notify_back_in_stock = models.BooleanField(default=True)
    notify_out_of_stock = models.BooleanField(default=True)
    notify_new_product = models.BooleanField(default=True)
    notify_product_removed = models.BooleanField(default=True)
    notify_images_changed = models.BooleanField(default=False)

    auto_delete_events = models.BooleanField(default=False)
    event_retention_days = models.IntegerField(
        default=default_event_retention_days,
        validators=[MinValueValidator(1)],
    )
    prune_snapshots = models.BooleanField(default=True)
    snapshot_retention_days = models.IntegerField(
        default=default_snapshot_retention_days,
        validators=[MinValueValidator(1)],
    )

    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "watcher_preferences"
        verbose_name = "Watcher Preferences"
        verbose_name_plural = "Watcher Preferences"

    def __str__(self):
        return "Watcher preferences"

    def save(self, *args, **kwargs):
        self.pk = 1
        self.updated_at = timezone.now()
        super().save(*args, **kwargs)

    @classmethod
    def load(cls) -> "WatcherPreferences":
        prefs, _ = cls.objects.get_or_create(pk=1)
        return prefs
