"""
Tests for the background sync loop lifecycle.
"""

import asyncio

import pytest

from watcher.services.scheduler import SyncScheduler
from watcher.services.sync_orchestrator import SyncAllResult


class FakeOrchestrator:
    def __init__(self, fail_first=False):
        self.sync_calls = 0
        self.retention_calls = 0
        self.fail_first = fail_first

    async def sync_all_stores(self):
        self.sync_calls += 1
        if self.fail_first and self.sync_calls == 1:
            raise RuntimeError("database is locked")
        return SyncAllResult()

    def run_retention_maintenance(self):
        self.retention_calls += 1


class FakePreferences:
    def __init__(self, minutes=30):
        self.minutes = minutes

    def sync_interval_seconds(self):
        return self.minutes * 60.0


class TestInterval:

    def test_floor_applies_to_override(self):
        scheduler = SyncScheduler(FakeOrchestrator(), FakePreferences(), interval_seconds=10, floor_seconds=300)

        assert scheduler._interval_seconds() == 300

    def test_preferences_interval(self):
        scheduler = SyncScheduler(FakeOrchestrator(), FakePreferences(minutes=45), floor_seconds=300)

        assert scheduler._interval_seconds() == 2700

    def test_default_floor_is_five_minutes(self):
        scheduler = SyncScheduler(FakeOrchestrator(), FakePreferences())

        assert scheduler.effective_interval(60) == 300


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_run_cycle(self):
        orchestrator = FakeOrchestrator()
        scheduler = SyncScheduler(orchestrator, FakePreferences())

        result = await scheduler.run_cycle()

        assert isinstance(result, SyncAllResult)
        assert orchestrator.sync_calls == 1
        assert orchestrator.retention_calls == 1
        assert scheduler.cycles == 1
        assert scheduler.last_sync_at is not None

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        orchestrator = FakeOrchestrator()
        scheduler = SyncScheduler(orchestrator, FakePreferences(), interval_seconds=0.01, floor_seconds=0)

        task = scheduler.start()
        assert scheduler.start() is task
        assert scheduler.is_running

        await asyncio.sleep(0.3)
        await scheduler.stop()

        assert not scheduler.is_running
        assert task.cancelled()
        assert orchestrator.sync_calls >= 2

    @pytest.mark.asyncio
    async def test_failed_cycle_keeps_loop_alive(self):
        orchestrator = FakeOrchestrator(fail_first=True)
        scheduler = SyncScheduler(orchestrator, FakePreferences(), interval_seconds=0.01, floor_seconds=0)

        scheduler.start()
        await asyncio.sleep(0.3)
        await scheduler.stop()

        assert orchestrator.sync_calls >= 2
        assert scheduler.cycles >= 1

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self):
        scheduler = SyncScheduler(FakeOrchestrator(), FakePreferences())

        await scheduler.stop()

        assert not scheduler.is_running
