"""
Notification Bridge - turn a sync's change events into notification batches.

Events are grouped per store, filtered by the user's per-kind toggles and
price thresholds, summarised, and given a priority. Delivery itself is
the job of a Notifier (configured by ``WATCHER_NOTIFIER``); events that
are filtered out stay in the activity history, they are just not
announced.
"""

import logging
from collections import Counter, OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Tuple

from django.conf import settings
from django.utils.module_loading import import_string

from watcher.models import ChangeMagnitude, ChangeType, PRICE_CHANGE_TYPES, PriceThreshold
from watcher.services.dto import ChangeEventDTO
from watcher.services.preferences import PreferencesService, get_preferences_service

logger = logging.getLogger(__name__)


class NotificationPriority(str, Enum):
    PASSIVE = "passive"
    ACTIVE = "active"
    TIME_SENSITIVE = "time_sensitive"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    NotificationPriority.PASSIVE: 0,
    NotificationPriority.ACTIVE: 1,
    NotificationPriority.TIME_SENSITIVE: 2,
}


def event_priority(event) -> NotificationPriority:
    """Priority of a single event."""
    change_type = event.change_type

    if change_type == ChangeType.BACK_IN_STOCK:
        return NotificationPriority.TIME_SENSITIVE

    if change_type in PRICE_CHANGE_TYPES:
        if event.magnitude == ChangeMagnitude.SMALL:
            return NotificationPriority.PASSIVE
        if change_type == ChangeType.PRICE_DROPPED and event.magnitude == ChangeMagnitude.LARGE:
            return NotificationPriority.TIME_SENSITIVE
        return NotificationPriority.ACTIVE

    if change_type == ChangeType.IMAGES_CHANGED:
        return NotificationPriority.PASSIVE

    return NotificationPriority.ACTIVE


def determine_priority(events: Sequence) -> NotificationPriority:
    """Highest priority in the batch; an empty batch is passive."""
    priority = NotificationPriority.PASSIVE
    for event in events:
        candidate = event_priority(event)
        if candidate.rank > priority.rank:
            priority = candidate
    return priority


def threshold_satisfied(event, prefs) -> bool:
    """Apply the drop or increase threshold matching the event's direction."""
    if event.change_type == ChangeType.PRICE_DROPPED:
        return PriceThreshold(prefs.price_drop_threshold).is_satisfied_by(event)
    if event.change_type == ChangeType.PRICE_INCREASED:
        return PriceThreshold(prefs.price_increase_threshold).is_satisfied_by(event)
    return True


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def format_body(events: Sequence) -> str:
    """One-line summary, e.g. "2 price drops, 1 back in stock"."""
    counts = Counter(e.change_type for e in events)
    parts = []

    count = counts.get(ChangeType.PRICE_DROPPED, 0)
    if count:
        parts.append(f"{count} price {_plural(count, 'drop', 'drops')}")
    count = counts.get(ChangeType.PRICE_INCREASED, 0)
    if count:
        parts.append(f"{count} price {_plural(count, 'increase', 'increases')}")
    count = counts.get(ChangeType.BACK_IN_STOCK, 0)
    if count:
        parts.append(f"{count} back in stock")
    count = counts.get(ChangeType.OUT_OF_STOCK, 0)
    if count:
        parts.append(f"{count} out of stock")
    count = counts.get(ChangeType.NEW_PRODUCT, 0)
    if count:
        parts.append(f"{count} new {_plural(count, 'product', 'products')}")
    count = counts.get(ChangeType.PRODUCT_REMOVED, 0)
    if count:
        parts.append(f"{count} {_plural(count, 'product', 'products')} removed")

    if not parts:
        total = len(events)
        return f"{total} {_plural(total, 'change', 'changes')} detected"
    return ", ".join(parts)


@dataclass(frozen=True)
class NotificationBatch:
    """Everything a notifier needs to announce one store's changes."""

    store_id: object
    title: str
    body: str
    priority: NotificationPriority
    events: Tuple[ChangeEventDTO, ...]

    @property
    def play_sound(self) -> bool:
        return self.priority is not NotificationPriority.PASSIVE


class Notifier(Protocol):
    def notify(self, batch: NotificationBatch) -> None:
        ...


class LoggingNotifier:
    """Default notifier: writes each batch to the log."""

    def notify(self, batch: NotificationBatch) -> None:
        logger.info(
            f"[{batch.priority.value}] {batch.title}: {batch.body} "
            f"({len(batch.events)} events)"
        )


def load_notifier(path: Optional[str] = None) -> Notifier:
    path = path or getattr(
        settings, "WATCHER_NOTIFIER", "watcher.services.notification_bridge.LoggingNotifier"
    )
    return import_string(path)()


class NotificationBridge:
    """
    Filters, groups and prioritises change events, then hands them to a Notifier.

    Usage:
        bridge = NotificationBridge()
        batches = bridge.dispatch(event_dtos)
    """

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        preferences: Optional[PreferencesService] = None,
    ):
        self.notifier = notifier or load_notifier()
        self.preferences = preferences or get_preferences_service()

    def build_batches(self, events: Sequence[ChangeEventDTO]) -> List[NotificationBatch]:
        """Group notifiable events per store, in first-seen store order."""
        if not events:
            return []

        prefs = self.preferences.get()
        if not prefs.notifications_enabled:
            return []

        grouped = OrderedDict()
        for event in events:
            grouped.setdefault(event.store_id, []).append(event)

        batches = []
        for store_id, store_events in grouped.items():
            notifiable = [
                e for e in store_events
                if self.preferences.is_enabled_for(e.change_type, prefs) and threshold_satisfied(e, prefs)
            ]
            if not notifiable:
                continue
            batches.append(NotificationBatch(
                store_id=store_id,
                title=notifiable[0].store_name,
                body=format_body(notifiable),
                priority=determine_priority(notifiable),
                events=tuple(notifiable),
            ))
        return batches

    def dispatch(self, events: Sequence[ChangeEventDTO]) -> List[NotificationBatch]:
        """
        Build batches and deliver them.

        A notifier failure is logged and does not affect other batches or
        the sync that produced the events.
        """
        batches = self.build_batches(events)
        for batch in batches:
            try:
                self.notifier.notify(batch)
            except Exception as e:
                logger.error(f"Notifier failed for store {batch.store_id}: {e}")
            else:
                logger.debug(f"Dispatched {len(batch.events)} events for {batch.title}")
        return batches
