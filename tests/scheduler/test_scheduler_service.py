"""
Test cases for the scheduler service.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from scheduler.alerting import NotificationDispatcher
from scheduler.change_detector import ChangeDetector
from scheduler.models import AlertConfig, SchedulerConfig
from scheduler.scheduler_service import SchedulerService
from tracker.exceptions import StorageUnavailable
from tracker.fetcher import FetchResponse
from tracker.models import CycleOutcome, Target


def make_target(target_id: str) -> Target:
    return Target(
        id=target_id,
        locator=f"https://example.com/{target_id}",
        extraction_rule={"kind": "regex", "pattern": r"version (\S+)"}
    )


class TestSchedulerService:
    """Test cases for SchedulerService."""

    @pytest.fixture
    def targets(self):
        return [make_target("alpha"), make_target("beta")]

    @pytest.fixture
    def dispatcher(self):
        mock = AsyncMock(spec=NotificationDispatcher)
        mock.dispatch.return_value = 1
        return mock

    @pytest.fixture
    def versions(self):
        """Current version served per locator."""
        return {
            "https://example.com/alpha": "version 1.0",
            "https://example.com/beta": "version 2.0",
        }

    @pytest.fixture
    def service(self, targets, memory_store, dispatcher, versions):
        async def fetch(locator, timeout_ms, user_agent=None):
            return FetchResponse(content=versions[locator], status_code=200)

        detector = ChangeDetector(memory_store, fetch)
        return SchedulerService(SchedulerConfig(poll_interval_minutes=60), targets, detector, dispatcher)

    @pytest.mark.asyncio
    async def test_run_once(self, service, memory_store):
        """Run-once mode checks every target and returns the results."""
        results = await service.start(run_once=True)

        assert sorted(result.target_id for result in results) == ["alpha", "beta"]
        assert all(result.first_run for result in results)
        assert memory_store.load("alpha").value == "1.0"
        assert memory_store.load("beta").value == "2.0"
        assert service.scheduler.running is False

    @pytest.mark.asyncio
    async def test_change_is_dispatched(self, service, dispatcher, versions, targets):
        """Only changed targets notify."""
        await service.run_targets(targets)
        dispatcher.dispatch.assert_not_called()

        versions["https://example.com/alpha"] = "version 1.1"
        results = await service.run_targets(targets)

        outcomes = {result.target_id: result.outcome for result in results}
        assert outcomes == {"alpha": CycleOutcome.CHANGED, "beta": CycleOutcome.UNCHANGED}
        dispatcher.dispatch.assert_called_once()
        event = dispatcher.dispatch.call_args.args[0]
        assert event.previous_value == "1.0"
        assert event.current_value == "1.1"

    @pytest.mark.asyncio
    async def test_persistence_failure_dispatch(self, service, dispatcher, versions, targets, memory_store):
        """An unsaved change still notifies when configured to."""
        await service.run_targets(targets)
        versions["https://example.com/alpha"] = "version 1.1"

        with patch.object(memory_store, "save", side_effect=StorageUnavailable("disk full")):
            result = await service.run_target(targets[0])

        assert result.outcome == CycleOutcome.PERSISTENCE_FAILED
        dispatcher.dispatch.assert_called_once()

    @pytest.mark.asyncio
    async def test_persistence_failure_without_dispatch(self, service, dispatcher, versions, targets, memory_store):
        """Unsaved changes stay silent when that alert is switched off."""
        service.config = SchedulerConfig(alert_config=AlertConfig(alert_on_persistence_failure=False))
        await service.run_targets(targets)
        versions["https://example.com/alpha"] = "version 1.1"

        with patch.object(memory_store, "save", side_effect=StorageUnavailable("disk full")):
            await service.run_target(targets[0])

        dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_status_tracking(self, service, versions, targets):
        """Statuses record last outcome, value and consecutive failures."""
        await service.run_targets(targets)
        assert service.statuses["alpha"].last_value == "1.0"
        assert service.statuses["alpha"].consecutive_failures == 0

        versions["https://example.com/alpha"] = "maintenance"
        await service.run_target(targets[0])
        await service.run_target(targets[0])

        status = service.statuses["alpha"]
        assert status.last_outcome == CycleOutcome.EXTRACTION_FAILED
        assert status.consecutive_failures == 2
        assert status.last_value == "1.0"
        assert status.last_error is not None

        versions["https://example.com/alpha"] = "version 1.0"
        await service.run_target(targets[0])
        assert service.statuses["alpha"].consecutive_failures == 0
        assert service.statuses["alpha"].last_error is None

    @pytest.mark.asyncio
    async def test_same_target_never_runs_concurrently(self, targets, memory_store, dispatcher):
        """Cycles of one target are serialized."""
        active = 0
        peak = 0

        async def slow_fetch(locator, timeout_ms, user_agent=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return FetchResponse(content="version 1.0", status_code=200)

        service = SchedulerService(
            SchedulerConfig(),
            targets,
            ChangeDetector(memory_store, slow_fetch),
            dispatcher
        )
        await asyncio.gather(*(service.run_target(targets[0]) for _ in range(5)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, memory_store, dispatcher):
        """No more than max_concurrent_targets cycles run at once."""
        active = 0
        peak = 0

        async def slow_fetch(locator, timeout_ms, user_agent=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return FetchResponse(content="version 1.0", status_code=200)

        targets = [make_target(f"t{i}") for i in range(6)]
        service = SchedulerService(
            SchedulerConfig(max_concurrent_targets=2),
            targets,
            ChangeDetector(memory_store, slow_fetch),
            dispatcher
        )
        results = await service.run_targets(targets)

        assert len(results) == 6
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_scheduled_jobs(self, service):
        """One interval job per target is registered."""
        service._add_scheduled_jobs()

        status = service.get_scheduler_status()
        assert status["job_count"] == 2
        assert sorted(job["id"] for job in status["jobs"]) == ["check_alpha", "check_beta"]
        assert [target["target_id"] for target in status["targets"]] == ["alpha", "beta"]

    @pytest.mark.asyncio
    async def test_daemon_stops(self, memory_store, dispatcher):
        """Daemon mode runs until stopped."""
        async def fetch(locator, timeout_ms, user_agent=None):
            return FetchResponse(content="version 1.0", status_code=200)

        service = SchedulerService(SchedulerConfig(), [], ChangeDetector(memory_store, fetch), dispatcher)
        asyncio.get_running_loop().call_later(0.05, service.stop)

        results = await asyncio.wait_for(service.start(), timeout=5)

        assert results == []
        assert service.scheduler.running is False
