"""
Celery tasks for the Catalog Watcher.

- sync_all_stores: periodic sync of every store (beat, every 30 minutes)
- sync_store: sync a single store on demand
- run_retention_maintenance: daily event and snapshot cleanup

These wrap the same SyncOrchestrator the in-process scheduler uses.
"""

import asyncio
import logging
from typing import Any, Dict

from celery import shared_task

from watcher.services.errors import SyncError
from watcher.services.sync_orchestrator import get_orchestrator

logger = logging.getLogger(__name__)


def _run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@shared_task(name="watcher.tasks.sync_all_stores")
def sync_all_stores() -> Dict[str, Any]:
    """
    Sync every store one after another.

    Returns:
        Dict with per-store outcomes and the number of new events
    """
    logger.info("Periodic sync of all stores")
    result = _run(get_orchestrator().sync_all_stores())
    return {
        "status": "completed",
        "stores": len(result.outcomes),
        "failed": len(result.failed),
        "events": result.total_events,
        "outcomes": [o.to_dict() for o in result.outcomes],
    }


@shared_task(name="watcher.tasks.sync_store", bind=True)
def sync_store(self, store_id: str) -> Dict[str, Any]:
    """
    Sync a single store.

    Args:
        store_id: UUID of the Store to sync

    Returns:
        Dict with the sync status, or the error description on failure
    """
    logger.info(f"Sync task for store {store_id}")
    try:
        result = _run(get_orchestrator().sync_store(store_id))
    except SyncError as e:
        logger.warning(f"Sync task for store {store_id} failed: {e}")
        return {"store_id": store_id, "status": "failed", **e.to_dict()}

    return {
        "store_id": store_id,
        "status": result.status.value,
        "events": len(result.events),
    }


@shared_task(name="watcher.tasks.run_retention_maintenance")
def run_retention_maintenance() -> Dict[str, Any]:
    """Delete events and snapshots older than the configured retention."""
    result = get_orchestrator().run_retention_maintenance()
    return {
        "status": "completed",
        "events_deleted": result.events_deleted,
        "snapshots_deleted": result.snapshots_deleted,
    }
