"""
PreferencesService: cached access to the user-editable WatcherPreferences.

The singleton row is read on every sync and every notification dispatch,
so it is cached for a few minutes and invalidated whenever it is saved
through this service.
"""

import logging
from typing import Optional

from django.conf import settings
from django.core.cache import cache

from watcher.models import ChangeType, WatcherPreferences

logger = logging.getLogger(__name__)

NOTIFY_FIELD_BY_CHANGE_TYPE = {
    ChangeType.PRICE_DROPPED: "notify_price_dropped",
    ChangeType.PRICE_INCREASED: "notify_price_increased",
    ChangeType.BACK_IN_STOCK: "notify_back_in_stock",
    ChangeType.OUT_OF_STOCK: "notify_out_of_stock",
    ChangeType.NEW_PRODUCT: "notify_new_product",
    ChangeType.PRODUCT_REMOVED: "notify_product_removed",
    ChangeType.IMAGES_CHANGED: "notify_images_changed",
}


class PreferencesService:
    """
    Loads and updates the WatcherPreferences singleton.

    All reads go through the Django cache with a 5-minute TTL.
    """

    CACHE_TTL = 300  # 5 minutes
    CACHE_KEY = "watcher:preferences"

    def get(self) -> WatcherPreferences:
        """Current preferences, creating the row with defaults if missing."""
        prefs = cache.get(self.CACHE_KEY)
        if prefs is None:
            prefs = WatcherPreferences.load()
            cache.set(self.CACHE_KEY, prefs, self.CACHE_TTL)
        return prefs

    def update(self, **changes) -> WatcherPreferences:
        """
        Apply field changes and save.

        Raises:
            ValueError: for unknown field names
        """
        prefs = WatcherPreferences.load()
        field_names = {f.name for f in WatcherPreferences._meta.get_fields()} - {"id", "updated_at"}
        for name, value in changes.items():
            if name not in field_names:
                raise ValueError(f"Unknown preference: {name}")
            setattr(prefs, name, value)

        prefs.sync_interval_minutes = max(prefs.sync_interval_minutes, self.interval_floor)
        prefs.full_clean()
        prefs.save()
        self.invalidate()
        logger.info(f"Preferences updated: {sorted(changes)}")
        return prefs

    def invalidate(self) -> None:
        cache.delete(self.CACHE_KEY)

    @property
    def interval_floor(self) -> int:
        return getattr(settings, "WATCHER_SYNC_INTERVAL_FLOOR_MINUTES", 5)

    def sync_interval_minutes(self) -> int:
        """Background sync interval, never below the floor."""
        return max(self.get().sync_interval_minutes, self.interval_floor)

    def sync_interval_seconds(self) -> float:
        return self.sync_interval_minutes() * 60.0

    def is_enabled_for(self, change_type: str, prefs: Optional[WatcherPreferences] = None) -> bool:
        """Per-change-kind notification toggle."""
        prefs = prefs or self.get()
        field_name = NOTIFY_FIELD_BY_CHANGE_TYPE.get(change_type)
        if field_name is None:
            return False
        return bool(getattr(prefs, field_name))


_service: Optional[PreferencesService] = None


def get_preferences_service() -> PreferencesService:
    global _service
    if _service is None:
        _service = PreferencesService()
    return _service
