"""
Tests for variant snapshots: recording, history queries and pruning.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from watcher.models import Product, Variant, VariantSnapshot
from watcher.services.diff_engine import DiffEngine
from watcher.services.history_tracker import HistoryTracker


@pytest.fixture
def tracker(gateway):
    return HistoryTracker(gateway)


@pytest.fixture
def variant(store, gateway, remote_product):
    DiffEngine(gateway).reconcile(store, [remote_product(1)], initial_import=True)
    return Variant.objects.get(external_id=10)


@pytest.mark.django_db
class TestHistoryTracker:

    def test_record_snapshot(self, tracker, variant):
        tracker.record_snapshot(variant, Decimal("9.00"), None, True)

        snapshot = VariantSnapshot.objects.get()
        assert snapshot.variant_id == variant.pk
        assert snapshot.price == Decimal("9.00")
        assert snapshot.available is True

    def test_price_history_oldest_first(self, tracker, variant):
        now = timezone.now()
        tracker.record_snapshot(variant, Decimal("8.00"), None, True, captured_at=now)
        tracker.record_snapshot(variant, Decimal("9.00"), None, False, captured_at=now - timedelta(days=1))

        history = tracker.price_history(variant.pk)

        assert [s.price for s in history] == [Decimal("9.00"), Decimal("8.00")]
        assert history[0].available is False

    def test_prune_by_age(self, tracker, variant):
        now = timezone.now()
        tracker.record_snapshot(variant, Decimal("7.00"), None, True, captured_at=now - timedelta(days=400))
        tracker.record_snapshot(variant, Decimal("8.00"), None, True, captured_at=now - timedelta(days=10))

        deleted = tracker.prune_snapshots(now - timedelta(days=365))

        assert deleted == 1
        assert list(VariantSnapshot.objects.values_list("price", flat=True)) == [Decimal("8.00")]

    def test_recent_price_change(self, tracker, variant):
        now = timezone.now()
        product = Product.objects.get(external_id=1)
        assert tracker.recent_price_change(product) is None

        tracker.record_snapshot(variant, Decimal("12.00"), None, True, captured_at=now - timedelta(hours=2))
        assert tracker.recent_price_change(product) is None

        tracker.record_snapshot(variant, Decimal("9.00"), None, True, captured_at=now)
        assert tracker.recent_price_change(product) == Decimal("-3.00")

    def test_recent_price_change_ignores_stock_only_snapshots(self, tracker, variant):
        now = timezone.now()
        product = Product.objects.get(external_id=1)
        tracker.record_snapshot(variant, Decimal("10.00"), None, True, captured_at=now - timedelta(hours=1))
        tracker.record_snapshot(variant, Decimal("10.00"), None, False, captured_at=now)

        assert tracker.recent_price_change(product) is None

    def test_snapshots_deleted_with_variant(self, tracker, variant, gateway):
        tracker.record_snapshot(variant, Decimal("9.00"), None, True)

        gateway.delete_variants([variant.pk])

        assert VariantSnapshot.objects.count() == 0
