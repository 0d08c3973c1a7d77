"""
In-memory sync state shared between the sync loop and readers.

Which stores are syncing right now, and the last sync error per store,
are deliberately not persisted: they describe this process only and are
written from outside the persistence writer. A plain lock guards them.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Set
from uuid import UUID

from django.utils import timezone


@dataclass(frozen=True)
class StoreSyncError:
    """Ephemeral record of a failed sync, for banner display."""

    store_id: UUID
    store_name: str
    kind: str
    message: str
    occurred_at: datetime
    retryable: bool = True

    def to_dict(self) -> dict:
        return {
            "store_id": str(self.store_id),
            "store_name": self.store_name,
            "kind": self.kind,
            "message": self.message,
            "occurred_at": self.occurred_at.isoformat(),
            "retryable": self.retryable,
        }


class SyncStateRegistry:
    """Thread-safe per-store syncing flags and last errors."""

    def __init__(self):
        self._lock = threading.Lock()
        self._syncing: Set[UUID] = set()
        self._errors: Dict[UUID, StoreSyncError] = {}

    def try_begin(self, store_id: UUID) -> bool:
        """Mark the store as syncing; False if a sync is already running."""
        with self._lock:
            if store_id in self._syncing:
                return False
            self._syncing.add(store_id)
            return True

    def finish(self, store_id: UUID) -> None:
        with self._lock:
            self._syncing.discard(store_id)

    def is_syncing(self, store_id: UUID) -> bool:
        with self._lock:
            return store_id in self._syncing

    def syncing_store_ids(self) -> List[UUID]:
        with self._lock:
            return list(self._syncing)

    def record_error(self, store_id: UUID, error, store_name: str = "") -> StoreSyncError:
        """Remember the latest failure for a store, replacing any earlier one."""
        entry = StoreSyncError(
            store_id=store_id,
            store_name=store_name,
            kind=getattr(error, "kind", type(error).__name__),
            message=str(error),
            occurred_at=timezone.now(),
            retryable=getattr(error, "is_retryable", True),
        )
        with self._lock:
            self._errors[store_id] = entry
        return entry

    def record_success(self, store_id: UUID) -> None:
        with self._lock:
            self._errors.pop(store_id, None)

    def error_for(self, store_id: UUID) -> Optional[StoreSyncError]:
        with self._lock:
            return self._errors.get(store_id)

    def errors(self) -> List[StoreSyncError]:
        with self._lock:
            return sorted(self._errors.values(), key=lambda e: e.occurred_at)

    def error_summary(self) -> Optional[str]:
        with self._lock:
            count = len(self._errors)
        if count == 0:
            return None
        if count == 1:
            return "1 store failed to sync"
        return f"{count} stores failed to sync"

    def clear_errors(self) -> None:
        with self._lock:
            self._errors.clear()

    def forget(self, store_id: UUID) -> None:
        """Drop all state for a deleted store."""
        with self._lock:
            self._syncing.discard(store_id)
            self._errors.pop(store_id, None)


_registry = SyncStateRegistry()


def get_sync_state() -> SyncStateRegistry:
    return _registry
