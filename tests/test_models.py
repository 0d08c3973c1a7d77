"""
Tests for database models.

Covers cascade ownership, listing caches, the price threshold rules and
the singleton preferences row.
"""

import pytest
from decimal import Decimal
from django.db import IntegrityError

from watcher.models import (
    ChangeEvent,
    ChangeMagnitude,
    ChangeType,
    PriceThreshold,
    Product,
    Store,
    Variant,
    VariantSnapshot,
    WatcherPreferences,
    make_search_key,
)


def make_product(store, external_id, title="Mug", images=None):
    return Product.objects.create(
        store=store,
        external_id=external_id,
        title=title,
        image_urls=images or [],
    )


@pytest.mark.django_db
class TestStore:

    def test_delete_cascades_to_products_and_events(self):
        store = Store.objects.create(name="Shop", domain="shop.example.com")
        product = make_product(store, 1)
        variant = Variant.objects.create(product=product, external_id=10, title="Default", price=Decimal("9.99"))
        VariantSnapshot.objects.create(variant=variant, price=Decimal("9.99"), available=True)
        ChangeEvent.objects.create(store=store, change_type=ChangeType.NEW_PRODUCT, product_title="Mug")

        store.delete()

        assert Product.objects.count() == 0
        assert Variant.objects.count() == 0
        assert VariantSnapshot.objects.count() == 0
        assert ChangeEvent.objects.count() == 0

    def test_listing_cache_skips_removed_products(self):
        store = Store.objects.create(name="Shop", domain="shop.example.com")
        for n in range(1, 6):
            make_product(store, n, images=[f"https://cdn.example.com/{n}.jpg"])
        Product.objects.filter(external_id=2).update(is_removed=True)

        store.refresh_listing_cache()

        store.refresh_from_db()
        assert store.cached_product_count == 4
        assert store.cached_preview_image_urls == [
            "https://cdn.example.com/1.jpg",
            "https://cdn.example.com/3.jpg",
            "https://cdn.example.com/4.jpg",
        ]


@pytest.mark.django_db
class TestProduct:

    def test_external_id_unique_per_store(self):
        store = Store.objects.create(name="Shop", domain="shop.example.com")
        other = Store.objects.create(name="Other", domain="other.example.com")
        make_product(store, 1)
        make_product(other, 1)

        with pytest.raises(IntegrityError):
            make_product(store, 1)

    def test_listing_cache_uses_first_variant_price(self):
        store = Store.objects.create(name="Shop", domain="shop.example.com")
        product = make_product(store, 1, title="Crème Brûlée Mug")
        Variant.objects.create(product=product, external_id=11, title="Large", price=Decimal("14.00"), position=2, available=True)
        Variant.objects.create(product=product, external_id=10, title="Small", price=Decimal("12.00"), position=1)

        product.refresh_listing_cache()

        product.refresh_from_db()
        assert product.cached_price == Decimal("12.00")
        assert product.cached_is_available is True
        assert product.title_search_key == "creme brulee mug"

    def test_listing_cache_without_variants(self):
        store = Store.objects.create(name="Shop", domain="shop.example.com")
        product = make_product(store, 1)

        product.refresh_listing_cache()

        assert product.cached_price == Decimal("0")
        assert product.cached_is_available is False


class TestSearchKey:

    @pytest.mark.parametrize("text,expected", [
        ("Café", "cafe"),
        ("STRASSE", "strasse"),
        ("", ""),
        (None, ""),
    ])
    def test_make_search_key(self, text, expected):
        assert make_search_key(text) == expected


class TestPriceThreshold:

    def event(self, change_type=ChangeType.PRICE_DROPPED, price_change="-5.00", magnitude=ChangeMagnitude.MEDIUM):
        return ChangeEvent(
            change_type=change_type,
            price_change=Decimal(price_change) if price_change is not None else None,
            magnitude=magnitude,
        )

    def test_any_passes_everything(self):
        assert PriceThreshold.ANY.is_satisfied_by(self.event(price_change="-0.01", magnitude=ChangeMagnitude.SMALL))

    def test_dollar_threshold_uses_absolute_change(self):
        assert PriceThreshold.DOLLARS_5.is_satisfied_by(self.event(price_change="-5.00"))
        assert not PriceThreshold.DOLLARS_10.is_satisfied_by(self.event(price_change="-9.99"))
        assert PriceThreshold.DOLLARS_10.is_satisfied_by(
            self.event(ChangeType.PRICE_INCREASED, price_change="12.00")
        )

    def test_percent_threshold_uses_magnitude(self):
        assert not PriceThreshold.PERCENT_10.is_satisfied_by(self.event(magnitude=ChangeMagnitude.SMALL))
        assert PriceThreshold.PERCENT_10.is_satisfied_by(self.event(magnitude=ChangeMagnitude.MEDIUM))
        assert not PriceThreshold.PERCENT_25.is_satisfied_by(self.event(magnitude=ChangeMagnitude.MEDIUM))
        assert PriceThreshold.PERCENT_25.is_satisfied_by(self.event(magnitude=ChangeMagnitude.LARGE))

    def test_non_price_events_always_pass(self):
        event = self.event(ChangeType.OUT_OF_STOCK, price_change=None, magnitude=ChangeMagnitude.SMALL)

        assert PriceThreshold.PERCENT_25.is_satisfied_by(event)


@pytest.mark.django_db
class TestWatcherPreferences:

    def test_load_creates_defaults_once(self):
        first = WatcherPreferences.load()
        second = WatcherPreferences.load()

        assert first.pk == second.pk == 1
        assert WatcherPreferences.objects.count() == 1
        assert first.sync_interval_minutes == 30
        assert first.notify_images_changed is False

    def test_save_always_targets_singleton(self):
        WatcherPreferences.load()

        WatcherPreferences(sync_interval_minutes=60).save()

        assert WatcherPreferences.objects.count() == 1
        assert WatcherPreferences.load().sync_interval_minutes == 60

    def test_new_row_takes_defaults_from_settings(self, settings):
        settings.WATCHER_SYNC_INTERVAL_MINUTES = 45
        settings.WATCHER_EVENT_RETENTION_DAYS = 14
        settings.WATCHER_SNAPSHOT_RETENTION_DAYS = 60

        prefs = WatcherPreferences.load()

        assert prefs.sync_interval_minutes == 45
        assert prefs.event_retention_days == 14
        assert prefs.snapshot_retention_days == 60

    def test_default_interval_respects_floor(self, settings):
        settings.WATCHER_SYNC_INTERVAL_MINUTES = 1

        assert WatcherPreferences.load().sync_interval_minutes == 5
