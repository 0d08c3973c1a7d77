"""
Sync Orchestrator - runs catalog syncs for monitored stores.

Per store the flow is: reentrancy guard -> local rate gate -> fetch the
whole catalog -> reconcile and snapshot in one writer transaction ->
notify. At most one sync per store runs at a time, and a failed sync
leaves the store exactly as it was before, apart from an ephemeral error
entry in the SyncStateRegistry.

Usage:
    orchestrator = get_orchestrator()
    result = await orchestrator.sync_store(store_id)
    summary = await orchestrator.sync_all_stores()
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from asgiref.sync import sync_to_async
from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from watcher.fetchers.catalog_client import get_catalog_client, normalize_domain
from watcher.fetchers.errors import FetchError
from watcher.fetchers.types import RemoteProduct
from watcher.monitoring import add_sync_breadcrumb, capture_sync_error, get_failure_tracker
from watcher.services.diff_engine import DiffEngine
from watcher.services.dto import ChangeEventDTO, StoreDTO
from watcher.services.errors import (
    LocalRateLimited,
    PersistenceFailed,
    StoreNotFound,
    StoreValidationFailed,
    SyncError,
    SyncFetchFailed,
)
from watcher.services.history_tracker import HistoryTracker
from watcher.services.notification_bridge import NotificationBridge
from watcher.services.persistence import PersistenceGateway, get_gateway
from watcher.services.preferences import PreferencesService, get_preferences_service
from watcher.services.sync_state import SyncStateRegistry, get_sync_state

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one ``sync_store`` call that did not raise."""

    store_id: uuid.UUID
    status: SyncStatus
    events: Tuple[ChangeEventDTO, ...] = ()
    retry_after: Optional[float] = None


@dataclass(frozen=True)
class StoreSyncOutcome:
    store_id: uuid.UUID
    store_name: str
    status: SyncStatus
    events_count: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    retry_after: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "store_id": str(self.store_id),
            "store_name": self.store_name,
            "status": self.status.value,
            "events_count": self.events_count,
            "error": self.error,
            "error_kind": self.error_kind,
            "retry_after": self.retry_after,
        }


@dataclass(frozen=True)
class SyncAllResult:
    outcomes: Tuple[StoreSyncOutcome, ...] = ()
    events: Tuple[ChangeEventDTO, ...] = ()

    @property
    def total_events(self) -> int:
        return len(self.events)

    @property
    def failed(self) -> List[StoreSyncOutcome]:
        return [o for o in self.outcomes if o.status is SyncStatus.FAILED]

    @property
    def completed(self) -> List[StoreSyncOutcome]:
        return [o for o in self.outcomes if o.status is SyncStatus.COMPLETED]


@dataclass(frozen=True)
class RetentionResult:
    events_deleted: int = 0
    snapshots_deleted: int = 0


def derive_store_name(domain: str) -> str:
    """First label of the domain: "shop.example.com" -> "shop"."""
    return domain.split(".")[0] or domain


def _as_store_id(store_id) -> uuid.UUID:
    if isinstance(store_id, uuid.UUID):
        return store_id
    try:
        return uuid.UUID(str(store_id))
    except ValueError:
        raise StoreNotFound(store_id) from None


class SyncOrchestrator:
    """
    Coordinates fetch, reconcile, history and notification for stores.

    All collaborators are injectable; defaults are the process-wide
    instances.
    """

    def __init__(
        self,
        gateway: Optional[PersistenceGateway] = None,
        client_factory: Optional[Callable] = None,
        state: Optional[SyncStateRegistry] = None,
        notifications: Optional[NotificationBridge] = None,
        preferences: Optional[PreferencesService] = None,
        failure_tracker=None,
        diff_engine: Optional[DiffEngine] = None,
        min_sync_interval: Optional[float] = None,
    ):
        self.gateway = gateway or get_gateway()
        self.client_factory = client_factory or get_catalog_client
        self.state = state or get_sync_state()
        self.preferences = preferences or get_preferences_service()
        self.notifications = notifications or NotificationBridge(preferences=self.preferences)
        self.failure_tracker = failure_tracker or get_failure_tracker()
        self.history = HistoryTracker(self.gateway)
        self.diff_engine = diff_engine or DiffEngine(self.gateway, self.history)
        self.min_sync_interval = (
            min_sync_interval if min_sync_interval is not None
            else getattr(settings, "WATCHER_MIN_SYNC_INTERVAL", 60)
        )

    # ------------------------------------------------------------------
    # Add store
    # ------------------------------------------------------------------

    async def add_store(self, name: Optional[str], domain: str) -> uuid.UUID:
        """
        Validate a domain, then create the store and import its catalog.

        The store row is only written once the probe and the full fetch
        have both succeeded. The initial import emits no events.

        Raises:
            StoreValidationFailed: bad domain or the catalog could not be fetched
            PersistenceFailed: the import transaction failed
        """
        try:
            domain = normalize_domain(domain)
        except ValueError as e:
            raise StoreValidationFailed(domain, message=str(e)) from e

        name = (name or "").strip() or derive_store_name(domain)
        logger.info(f"Adding store {name} ({domain})")

        try:
            async with self.client_factory() as client:
                await client.probe(domain)
                products = await client.fetch_all_products(domain)
        except FetchError as e:
            logger.warning(f"Store validation failed for {domain}: {e}")
            raise StoreValidationFailed(domain, e) from e

        try:
            store_id = await self.gateway.write(self._import_store, name, domain, products)
        except DatabaseError as e:
            logger.error(f"Failed to save new store {domain}: {e}")
            raise PersistenceFailed(e) from e

        logger.info(f"Added store {name} ({domain}) with {len(products)} products")
        return store_id

    def _import_store(self, name: str, domain: str, products: Sequence[RemoteProduct]) -> uuid.UUID:
        store = self.gateway.create_store(name, domain)
        self.diff_engine.reconcile(store, products, initial_import=True)
        self.gateway.set_last_fetched(store)
        return store.id

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_store(self, store_id) -> SyncResult:
        """
        Sync one store.

        Returns:
            SyncResult with status ``completed`` and the new events, or
            ``skipped`` if a sync of this store is already running

        Raises:
            StoreNotFound: no such store
            LocalRateLimited: synced less than the minimum interval ago
            SyncFetchFailed: the catalog fetch failed
            PersistenceFailed: the reconcile transaction failed
        """
        store_id = _as_store_id(store_id)
        store = await self.gateway.read(self.gateway.get_store, store_id)
        if store is None:
            raise StoreNotFound(store_id)

        if not self.state.try_begin(store_id):
            logger.info(f"Sync already running for {store.name}, skipping")
            return SyncResult(store_id=store_id, status=SyncStatus.SKIPPED)

        try:
            wait = store.seconds_until_sync_allowed(self.min_sync_interval)
            if wait > 0:
                logger.debug(f"Rate gate: {store.name} may sync again in {wait:.0f}s")
                raise LocalRateLimited(wait)

            return await self._run_sync(store)
        finally:
            self.state.finish(store_id)

    async def _run_sync(self, store: StoreDTO) -> SyncResult:
        start_time = time.time()
        logger.info(f"Sync started for {store.name} ({store.domain})")
        add_sync_breadcrumb(store.name, store.domain, message="Sync started")

        try:
            async with self.client_factory() as client:
                products = await client.fetch_all_products(store.domain)
        except FetchError as e:
            error = SyncFetchFailed(e, store.name)
            logger.warning(f"Sync failed for {store.name}: {e}")
            await self._record_failure(store, error)
            raise error from e

        try:
            events = await self.gateway.write(self._apply_fetch, store.id, products)
        except StoreNotFound:
            # Deleted while the fetch was in flight
            raise
        except DatabaseError as e:
            error = PersistenceFailed(e)
            logger.error(f"Saving sync results failed for {store.name}: {e}")
            capture_sync_error(e, store=store, extra_context={"phase": "reconcile"})
            await self._record_failure(store, error)
            raise error from e

        self.state.record_success(store.id)
        await sync_to_async(self.failure_tracker.record_success, thread_sensitive=False)(store.id)

        elapsed = time.time() - start_time
        logger.info(
            f"Sync finished for {store.name}: {len(products)} products, "
            f"{len(events)} events in {elapsed:.2f}s"
        )

        if events:
            await self._dispatch(store, events)

        return SyncResult(store_id=store.id, status=SyncStatus.COMPLETED, events=events)

    def _apply_fetch(self, store_id: uuid.UUID, products: Sequence[RemoteProduct]) -> Tuple[ChangeEventDTO, ...]:
        """Reconcile inside the writer and hand back detached event copies."""
        store = self.gateway.load_store(store_id)
        if store is None:
            raise StoreNotFound(store_id)

        result = self.diff_engine.reconcile(store, products)
        self.gateway.set_last_fetched(store)
        return tuple(ChangeEventDTO.from_model(e, store_name=store.name) for e in result.events)

    async def _record_failure(self, store: StoreDTO, error: SyncError) -> None:
        self.state.record_error(store.id, error, store_name=store.name)
        await sync_to_async(self.failure_tracker.record_failure, thread_sensitive=False)(
            store.id, store.name
        )

    async def _dispatch(self, store: StoreDTO, events: Sequence[ChangeEventDTO]) -> None:
        """Hand events to the notification bridge; the sync has already committed."""
        try:
            await sync_to_async(self.notifications.dispatch)(events)
        except Exception as e:
            logger.error(f"Notification dispatch failed for {store.name}: {e}")
            capture_sync_error(e, store=store, extra_context={"phase": "notify"})

    async def sync_all_stores(self) -> SyncAllResult:
        """
        Sync every store, one after another.

        A failing store is recorded in its outcome and does not stop the
        remaining stores.
        """
        stores = await self.gateway.read(self.gateway.list_stores)
        logger.info(f"Syncing {len(stores)} stores")

        outcomes: List[StoreSyncOutcome] = []
        events: List[ChangeEventDTO] = []

        for store in stores:
            try:
                result = await self.sync_store(store.id)
            except LocalRateLimited as e:
                outcomes.append(StoreSyncOutcome(
                    store_id=store.id,
                    store_name=store.name,
                    status=SyncStatus.RATE_LIMITED,
                    error_kind=e.kind,
                    retry_after=e.retry_after,
                ))
            except SyncError as e:
                outcomes.append(StoreSyncOutcome(
                    store_id=store.id,
                    store_name=store.name,
                    status=SyncStatus.FAILED,
                    error=str(e),
                    error_kind=e.kind,
                ))
            except Exception as e:
                logger.exception(f"Unexpected error syncing {store.name}: {e}")
                capture_sync_error(e, store=store, extra_context={"phase": "sync_all"})
                self.state.record_error(store.id, e, store_name=store.name)
                outcomes.append(StoreSyncOutcome(
                    store_id=store.id,
                    store_name=store.name,
                    status=SyncStatus.FAILED,
                    error=str(e),
                    error_kind=type(e).__name__,
                ))
            else:
                events.extend(result.events)
                outcomes.append(StoreSyncOutcome(
                    store_id=store.id,
                    store_name=store.name,
                    status=result.status,
                    events_count=len(result.events),
                ))

        summary = SyncAllResult(outcomes=tuple(outcomes), events=tuple(events))
        logger.info(
            f"Synced {len(summary.completed)}/{len(outcomes)} stores, "
            f"{summary.total_events} events, {len(summary.failed)} failed"
        )
        return summary

    # ------------------------------------------------------------------
    # Retention and write passthroughs
    # ------------------------------------------------------------------

    def run_retention_maintenance(self, now: Optional[datetime] = None) -> RetentionResult:
        """Apply event auto-delete and snapshot pruning per preferences."""
        now = now or timezone.now()
        prefs = self.preferences.get()

        events_deleted = 0
        if prefs.auto_delete_events and prefs.event_retention_days > 0:
            cutoff = now - timedelta(days=prefs.event_retention_days)
            events_deleted = self.gateway.delete_events_before(cutoff)

        snapshots_deleted = 0
        if prefs.prune_snapshots and prefs.snapshot_retention_days > 0:
            cutoff = now - timedelta(days=prefs.snapshot_retention_days)
            snapshots_deleted = self.history.prune_snapshots(cutoff)

        if events_deleted or snapshots_deleted:
            logger.info(
                f"Retention: deleted {events_deleted} events, {snapshots_deleted} snapshots"
            )
        return RetentionResult(events_deleted=events_deleted, snapshots_deleted=snapshots_deleted)

    def delete_store(self, store_id) -> bool:
        store_id = _as_store_id(store_id)
        deleted = self.gateway.delete_store(store_id)
        self.state.forget(store_id)
        return deleted

    def delete_all_events(self) -> int:
        return self.gateway.delete_all_events()

    def delete_old_snapshots(self, older_than: datetime) -> int:
        return self.history.prune_snapshots(older_than)


_orchestrator: Optional[SyncOrchestrator] = None


def get_orchestrator() -> SyncOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SyncOrchestrator()
    return _orchestrator
