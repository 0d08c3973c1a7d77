"""
API URL configuration for the watcher.

Endpoints:
- GET    /api/v1/stores/                      - List stores
- POST   /api/v1/stores/                      - Add a store
- DELETE /api/v1/stores/<store_id>/           - Delete a store
- GET    /api/v1/stores/<store_id>/products/  - Product list of a store
- POST   /api/v1/stores/<store_id>/sync/      - Sync one store
- POST   /api/v1/stores/sync/                 - Sync all stores
- GET    /api/v1/sync/status/                 - Syncing stores and last errors
- GET    /api/v1/events/                      - Activity feed
- DELETE /api/v1/events/                      - Delete all events
- GET    /api/v1/events/unread-count/         - Unread count
- GET    /api/v1/events/menu-bar/             - Menu bar events
- POST   /api/v1/events/mark-read/            - Mark events read
"""

from django.urls import path

from watcher.api.views import (
    events,
    mark_read,
    menu_bar_events,
    store_detail,
    store_products,
    stores,
    sync_all_stores,
    sync_status,
    sync_store,
    unread_count,
)

app_name = "watcher_api"

urlpatterns = [
    # Stores
    path("stores/", stores, name="stores"),
    path("stores/sync/", sync_all_stores, name="sync_all_stores"),
    path("stores/<uuid:store_id>/", store_detail, name="store_detail"),
    path("stores/<uuid:store_id>/products/", store_products, name="store_products"),
    path("stores/<uuid:store_id>/sync/", sync_store, name="sync_store"),
    path("sync/status/", sync_status, name="sync_status"),

    # Events
    path("events/", events, name="events"),
    path("events/unread-count/", unread_count, name="unread_count"),
    path("events/menu-bar/", menu_bar_events, name="menu_bar_events"),
    path("events/mark-read/", mark_read, name="mark_read"),
]
