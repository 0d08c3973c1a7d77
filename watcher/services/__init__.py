"""
Services for the Catalog Watcher.

Contains:
- persistence: single-writer gateway and display queries
- diff_engine: reconcile fetched catalogs, emit change events
- history_tracker: variant price/availability snapshots
- sync_orchestrator: per-store sync, add store, retention
- sync_state: in-memory syncing flags and last errors
- scheduler: background sync loop
- notification_bridge: notification filtering, priority, dispatch
- preferences: cached user preferences
"""

from watcher.services.errors import (
    SyncError,
    StoreNotFound,
    LocalRateLimited,
    SyncFetchFailed,
    PersistenceFailed,
    StoreValidationFailed,
)
from watcher.services.persistence import (
    ChangeKindGroup,
    EventFilter,
    PersistenceGateway,
    ProductSort,
    StockScope,
    get_gateway,
)
from watcher.services.sync_orchestrator import (
    SyncAllResult,
    SyncOrchestrator,
    SyncResult,
    SyncStatus,
    get_orchestrator,
)

__all__ = [
    "SyncError",
    "StoreNotFound",
    "LocalRateLimited",
    "SyncFetchFailed",
    "PersistenceFailed",
    "StoreValidationFailed",
    "ChangeKindGroup",
    "EventFilter",
    "PersistenceGateway",
    "ProductSort",
    "StockScope",
    "get_gateway",
    "SyncAllResult",
    "SyncOrchestrator",
    "SyncResult",
    "SyncStatus",
    "get_orchestrator",
]
