"""
Tests for notification filtering, batching and priority.
"""

import uuid
from decimal import Decimal

import pytest
from django.utils import timezone

from watcher.models import ChangeMagnitude, ChangeType, PriceThreshold
from watcher.services.dto import ChangeEventDTO
from watcher.services.notification_bridge import (
    LoggingNotifier,
    NotificationBridge,
    NotificationPriority,
    determine_priority,
    event_priority,
    format_body,
    load_notifier,
)
from watcher.services.preferences import PreferencesService

STORE_A = uuid.uuid4()
STORE_B = uuid.uuid4()


def event(change_type, magnitude=ChangeMagnitude.MEDIUM, price_change=None, store_id=STORE_A, store_name="Store A"):
    return ChangeEventDTO(
        id=uuid.uuid4(),
        store_id=store_id,
        store_name=store_name,
        occurred_at=timezone.now(),
        change_type=change_type,
        magnitude=magnitude,
        product_title="Widget",
        variant_title=None,
        old_value=None,
        new_value=None,
        price_change=Decimal(price_change) if price_change is not None else None,
        is_read=False,
        product_external_id=1,
    )


@pytest.fixture
def preferences():
    return PreferencesService()


@pytest.fixture
def bridge(notifier, preferences):
    return NotificationBridge(notifier=notifier, preferences=preferences)


class TestPriority:

    @pytest.mark.parametrize("change_type,magnitude,expected", [
        (ChangeType.BACK_IN_STOCK, ChangeMagnitude.MEDIUM, NotificationPriority.TIME_SENSITIVE),
        (ChangeType.PRICE_DROPPED, ChangeMagnitude.LARGE, NotificationPriority.TIME_SENSITIVE),
        (ChangeType.PRICE_DROPPED, ChangeMagnitude.MEDIUM, NotificationPriority.ACTIVE),
        (ChangeType.PRICE_DROPPED, ChangeMagnitude.SMALL, NotificationPriority.PASSIVE),
        (ChangeType.PRICE_INCREASED, ChangeMagnitude.LARGE, NotificationPriority.ACTIVE),
        (ChangeType.PRICE_INCREASED, ChangeMagnitude.SMALL, NotificationPriority.PASSIVE),
        (ChangeType.OUT_OF_STOCK, ChangeMagnitude.MEDIUM, NotificationPriority.ACTIVE),
        (ChangeType.NEW_PRODUCT, ChangeMagnitude.MEDIUM, NotificationPriority.ACTIVE),
        (ChangeType.PRODUCT_REMOVED, ChangeMagnitude.MEDIUM, NotificationPriority.ACTIVE),
        (ChangeType.IMAGES_CHANGED, ChangeMagnitude.MEDIUM, NotificationPriority.PASSIVE),
    ])
    def test_event_priority(self, change_type, magnitude, expected):
        assert event_priority(event(change_type, magnitude)) is expected

    def test_batch_takes_highest(self):
        events = [
            event(ChangeType.IMAGES_CHANGED),
            event(ChangeType.NEW_PRODUCT),
            event(ChangeType.BACK_IN_STOCK),
        ]
        assert determine_priority(events) is NotificationPriority.TIME_SENSITIVE

    def test_empty_batch_is_passive(self):
        assert determine_priority([]) is NotificationPriority.PASSIVE


class TestFormatBody:

    def test_counts_in_fixed_order(self):
        events = [
            event(ChangeType.BACK_IN_STOCK),
            event(ChangeType.PRICE_DROPPED),
            event(ChangeType.PRICE_DROPPED),
            event(ChangeType.NEW_PRODUCT),
        ]
        assert format_body(events) == "2 price drops, 1 back in stock, 1 new product"

    def test_singulars_and_plurals(self):
        assert format_body([event(ChangeType.PRICE_INCREASED)]) == "1 price increase"
        assert format_body([event(ChangeType.PRODUCT_REMOVED)] * 2) == "2 products removed"
        assert format_body([event(ChangeType.OUT_OF_STOCK)] * 3) == "3 out of stock"

    def test_fallback_for_uncounted_kinds(self):
        assert format_body([event(ChangeType.IMAGES_CHANGED)]) == "1 change detected"
        assert format_body([event(ChangeType.IMAGES_CHANGED)] * 2) == "2 changes detected"


class TestPriceThreshold:

    def test_any_passes_everything(self):
        assert PriceThreshold.ANY.is_satisfied_by(event(ChangeType.PRICE_DROPPED, ChangeMagnitude.SMALL, "-0.01"))

    def test_dollar_thresholds_use_absolute_change(self):
        assert PriceThreshold.DOLLARS_5.is_satisfied_by(event(ChangeType.PRICE_DROPPED, price_change="-5.00"))
        assert not PriceThreshold.DOLLARS_5.is_satisfied_by(event(ChangeType.PRICE_DROPPED, price_change="-4.99"))
        assert PriceThreshold.DOLLARS_10.is_satisfied_by(event(ChangeType.PRICE_INCREASED, price_change="12.00"))
        assert not PriceThreshold.DOLLARS_25.is_satisfied_by(event(ChangeType.PRICE_INCREASED, price_change="24.00"))

    @pytest.mark.parametrize("threshold,magnitude,expected", [
        (PriceThreshold.PERCENT_10, ChangeMagnitude.SMALL, False),
        (PriceThreshold.PERCENT_10, ChangeMagnitude.MEDIUM, True),
        (PriceThreshold.PERCENT_10, ChangeMagnitude.LARGE, True),
        (PriceThreshold.PERCENT_25, ChangeMagnitude.SMALL, False),
        (PriceThreshold.PERCENT_25, ChangeMagnitude.MEDIUM, False),
        (PriceThreshold.PERCENT_25, ChangeMagnitude.LARGE, True),
    ])
    def test_percent_thresholds_use_magnitude(self, threshold, magnitude, expected):
        assert threshold.is_satisfied_by(event(ChangeType.PRICE_DROPPED, magnitude, "-1.00")) is expected

    def test_non_price_events_always_pass(self):
        assert PriceThreshold.DOLLARS_25.is_satisfied_by(event(ChangeType.BACK_IN_STOCK))
        assert PriceThreshold.PERCENT_25.is_satisfied_by(event(ChangeType.NEW_PRODUCT))


@pytest.mark.django_db
class TestNotificationBridge:

    def test_groups_per_store(self, bridge, notifier):
        batches = bridge.dispatch([
            event(ChangeType.PRICE_DROPPED, price_change="-1.00"),
            event(ChangeType.NEW_PRODUCT, store_id=STORE_B, store_name="Store B"),
            event(ChangeType.BACK_IN_STOCK),
        ])

        assert [b.store_id for b in batches] == [STORE_A, STORE_B]
        assert batches[0].title == "Store A"
        assert batches[0].body == "1 price drop, 1 back in stock"
        assert batches[0].priority is NotificationPriority.TIME_SENSITIVE
        assert batches[0].play_sound is True
        assert len(batches[0].events) == 2
        assert notifier.batches == batches

    def test_master_toggle(self, bridge, notifier, preferences):
        preferences.update(notifications_enabled=False)

        assert bridge.dispatch([event(ChangeType.BACK_IN_STOCK)]) == []
        assert notifier.batches == []

    def test_per_kind_toggle(self, bridge, preferences):
        preferences.update(notify_new_product=False)

        batches = bridge.build_batches([
            event(ChangeType.NEW_PRODUCT),
            event(ChangeType.OUT_OF_STOCK),
        ])

        assert [e.change_type for e in batches[0].events] == [ChangeType.OUT_OF_STOCK]

    def test_images_changed_off_by_default(self, bridge):
        assert bridge.build_batches([event(ChangeType.IMAGES_CHANGED)]) == []

    def test_thresholds_by_direction(self, bridge, preferences):
        preferences.update(
            price_drop_threshold=PriceThreshold.DOLLARS_10,
            price_increase_threshold=PriceThreshold.PERCENT_25,
        )

        batches = bridge.build_batches([
            event(ChangeType.PRICE_DROPPED, ChangeMagnitude.LARGE, "-5.00"),
            event(ChangeType.PRICE_DROPPED, ChangeMagnitude.MEDIUM, "-15.00"),
            event(ChangeType.PRICE_INCREASED, ChangeMagnitude.MEDIUM, "20.00"),
            event(ChangeType.PRICE_INCREASED, ChangeMagnitude.LARGE, "1.00"),
        ])

        kept = batches[0].events
        assert [(e.change_type, e.price_change) for e in kept] == [
            (ChangeType.PRICE_DROPPED, Decimal("-15.00")),
            (ChangeType.PRICE_INCREASED, Decimal("1.00")),
        ]

    def test_small_changes_are_silent(self, bridge):
        batches = bridge.build_batches([event(ChangeType.PRICE_INCREASED, ChangeMagnitude.SMALL, "0.10")])

        assert batches[0].priority is NotificationPriority.PASSIVE
        assert batches[0].play_sound is False

    def test_notifier_failure_does_not_stop_other_batches(self, preferences):
        class FlakyNotifier:
            def __init__(self):
                self.delivered = []

            def notify(self, batch):
                if batch.store_id == STORE_A:
                    raise RuntimeError("notification center unavailable")
                self.delivered.append(batch)

        flaky = FlakyNotifier()
        bridge = NotificationBridge(notifier=flaky, preferences=preferences)

        batches = bridge.dispatch([
            event(ChangeType.NEW_PRODUCT),
            event(ChangeType.NEW_PRODUCT, store_id=STORE_B, store_name="Store B"),
        ])

        assert len(batches) == 2
        assert [b.store_id for b in flaky.delivered] == [STORE_B]

    def test_no_events_reads_nothing(self, bridge):
        assert bridge.build_batches([]) == []


class TestLoadNotifier:

    def test_default_is_logging_notifier(self):
        assert isinstance(load_notifier(), LoggingNotifier)

    def test_loads_dotted_path(self):
        notifier = load_notifier("watcher.services.notification_bridge.LoggingNotifier")
        assert isinstance(notifier, LoggingNotifier)

    def test_unknown_path(self):
        with pytest.raises(ImportError):
            load_notifier("watcher.services.notification_bridge.MissingNotifier")
