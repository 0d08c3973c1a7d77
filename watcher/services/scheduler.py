"""
SyncScheduler - long-lived background loop that syncs every store.

Each cycle runs ``sync_all_stores()``, then retention maintenance, then
sleeps for the configured interval (never less than the floor, 5 minutes
by default). The loop is an asyncio task with an explicit start/stop
lifecycle; stopping cancels it, abandoning any in-flight fetch.
"""

import asyncio
import logging
from typing import Optional

from asgiref.sync import sync_to_async
from django.conf import settings
from django.utils import timezone

from watcher.monitoring import capture_sync_error
from watcher.services.preferences import PreferencesService, get_preferences_service
from watcher.services.sync_orchestrator import SyncAllResult, SyncOrchestrator, get_orchestrator

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Usage:
        scheduler = SyncScheduler()
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        orchestrator: Optional[SyncOrchestrator] = None,
        preferences: Optional[PreferencesService] = None,
        interval_seconds: Optional[float] = None,
        floor_seconds: Optional[float] = None,
    ):
        self.orchestrator = orchestrator or get_orchestrator()
        self.preferences = preferences or get_preferences_service()
        self._interval_override = interval_seconds
        self.floor_seconds = (
            floor_seconds if floor_seconds is not None
            else getattr(settings, "WATCHER_SYNC_INTERVAL_FLOOR_MINUTES", 5) * 60.0
        )
        self._task: Optional[asyncio.Task] = None
        self.last_sync_at = None
        self.last_result: Optional[SyncAllResult] = None
        self.cycles = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def effective_interval(self, requested: float) -> float:
        return max(float(requested), self.floor_seconds)

    def _interval_seconds(self) -> float:
        if self._interval_override is not None:
            return self.effective_interval(self._interval_override)
        return self.effective_interval(self.preferences.sync_interval_seconds())

    def start(self) -> asyncio.Task:
        """Start the loop on the running event loop; a second call is a no-op."""
        if self.is_running:
            return self._task
        self._task = asyncio.create_task(self._run(), name="watcher-sync-loop")
        logger.info("Background sync loop started")
        return self._task

    async def stop(self) -> None:
        """Cancel the loop and wait for it to unwind."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Background sync loop stopped after {self.cycles} cycles")

    async def run_cycle(self) -> SyncAllResult:
        """One sync-all pass followed by retention maintenance."""
        result = await self.orchestrator.sync_all_stores()
        await sync_to_async(self.orchestrator.run_retention_maintenance)()
        self.last_result = result
        self.last_sync_at = timezone.now()
        self.cycles += 1
        return result

    async def _run(self) -> None:
        while True:
            try:
                await self.run_cycle()
            except Exception as e:
                # Keep the loop alive; the next cycle retries
                logger.exception(f"Background sync cycle failed: {e}")
                capture_sync_error(e, extra_context={"phase": "scheduler"})

            interval = await sync_to_async(self._interval_seconds)()
            logger.debug(f"Next background sync in {interval:.0f}s")
            await asyncio.sleep(interval)
