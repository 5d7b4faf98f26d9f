"""
Scheduler service for periodic change detection.

This module provides:
- Interval scheduling of one job per target with APScheduler
- Bounded concurrent run-once execution over many targets
- Per-target mutual exclusion so a target never runs twice at once
- Notification dispatch for detected changes
"""

import asyncio
import signal
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from scheduler.alerting import NotificationDispatcher
from scheduler.change_detector import ChangeDetector
from scheduler.models import SchedulerConfig, TargetStatus
from tracker.models import CycleOutcome, CycleResult, Target

logger = structlog.get_logger(__name__)


class SchedulerService:
    """Runs detection cycles for a set of targets, once or on an interval."""

    def __init__(
        self,
        config: SchedulerConfig,
        targets: Sequence[Target],
        change_detector: ChangeDetector,
        dispatcher: NotificationDispatcher
    ):
        """
        Initialize scheduler service.

        Args:
            config: Scheduler configuration
            targets: Targets to monitor
            change_detector: Detector running the cycles
            dispatcher: Receives change events
        """
        self.config = config
        self.targets: Dict[str, Target] = {target.id: target for target in targets}
        self.change_detector = change_detector
        self.dispatcher = dispatcher
        self.scheduler = AsyncIOScheduler(timezone=config.timezone)
        self.logger = logger.bind(component="scheduler_service")

        self.statuses: Dict[str, TargetStatus] = {
            target_id: TargetStatus(target_id=target_id) for target_id in self.targets
        }
        self._target_locks: Dict[str, asyncio.Lock] = {}
        self._stop_event: Optional[asyncio.Event] = None

        self._setup_scheduler_listeners()

    def _setup_scheduler_listeners(self) -> None:
        """Setup scheduler event listeners."""
        def job_executed_listener(event):
            self.logger.debug("Job executed", job_id=event.job_id)

        def job_error_listener(event):
            self.logger.error(
                "Job execution failed",
                job_id=event.job_id,
                error=str(event.exception)
            )

        self.scheduler.add_listener(job_executed_listener, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)

    def _setup_signal_handlers(self) -> None:
        """Stop gracefully on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.stop)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform / outside the main thread
                pass

    def _lock_for(self, target_id: str) -> asyncio.Lock:
        if target_id not in self._target_locks:
            self._target_locks[target_id] = asyncio.Lock()
        return self._target_locks[target_id]

    async def start(self, run_once: bool = False) -> List[CycleResult]:
        """
        Start the scheduler service.

        Args:
            run_once: Check every target once and return instead of
                running as a daemon

        Returns:
            Cycle results in run-once mode, an empty list otherwise
        """
        if run_once:
            self.logger.info("Running every target once", targets=len(self.targets))
            return await self.run_targets(list(self.targets.values()))

        self._stop_event = asyncio.Event()
        self._setup_signal_handlers()
        self._add_scheduled_jobs()
        self.scheduler.start()

        self.logger.info(
            "Scheduler service started",
            timezone=self.config.timezone,
            poll_interval_minutes=self.config.poll_interval_minutes,
            targets=len(self.targets)
        )

        try:
            await self._stop_event.wait()
        finally:
            self.stop()
        return []

    def stop(self) -> None:
        """Stop the scheduler service."""
        try:
            if self.scheduler.running:
                self.logger.info("Stopping scheduler service")
                self.scheduler.shutdown(wait=False)
                self.logger.info("Scheduler service stopped")
        except Exception as e:
            self.logger.error("Error stopping scheduler service", error=str(e))

        if self._stop_event is not None:
            self._stop_event.set()

    def _add_scheduled_jobs(self) -> None:
        """Add one interval job per target, starting immediately."""
        now = datetime.now(timezone.utc)
        for target in self.targets.values():
            self.scheduler.add_job(
                func=self.run_target,
                trigger=IntervalTrigger(
                    minutes=self.config.poll_interval_minutes,
                    timezone=self.config.timezone
                ),
                args=[target],
                id=f"check_{target.id}",
                name=f"Check {target.display_name}",
                next_run_time=now,
                max_instances=1,
                coalesce=True,
                replace_existing=True
            )
            self.logger.info(
                "Added target job",
                target_id=target.id,
                interval_minutes=self.config.poll_interval_minutes
            )

    async def run_target(self, target: Target) -> CycleResult:
        """Run one cycle for a target and notify on change."""
        async with self._lock_for(target.id):
            result = await self.change_detector.run_cycle(target)

        self._record_status(result)

        if result.outcome == CycleOutcome.PERSISTENCE_FAILED:
            self.logger.error(
                "Detected value could not be persisted; expect a repeat alert next cycle",
                target_id=target.id,
                current_value=result.current_value,
                error=result.error.message if result.error else None
            )

        should_notify = result.change_event is not None and (
            result.outcome == CycleOutcome.CHANGED
            or (
                result.outcome == CycleOutcome.PERSISTENCE_FAILED
                and self.config.alert_config.alert_on_persistence_failure
            )
        )
        if should_notify:
            await self.dispatcher.dispatch(result.change_event)

        return result

    async def run_targets(self, targets: Sequence[Target]) -> List[CycleResult]:
        """Run one cycle per target concurrently, bounded by max_concurrent_targets."""
        semaphore = asyncio.Semaphore(self.config.max_concurrent_targets)

        async def bounded(target: Target) -> CycleResult:
            async with semaphore:
                return await self.run_target(target)

        results = await asyncio.gather(*(bounded(target) for target in targets))

        self.logger.info(
            "Run completed",
            targets=len(results),
            changed=sum(1 for r in results if r.outcome == CycleOutcome.CHANGED),
            failed=sum(1 for r in results if not r.succeeded)
        )
        return list(results)

    def _record_status(self, result: CycleResult) -> None:
        status = self.statuses.setdefault(result.target_id, TargetStatus(target_id=result.target_id))
        status.last_outcome = result.outcome
        status.last_run_at = result.finished_at
        if result.current_value is not None:
            status.last_value = result.current_value
        if result.succeeded:
            status.last_error = None
            status.consecutive_failures = 0
        else:
            status.last_error = result.error.message if result.error else result.outcome.value
            status.consecutive_failures += 1

    def get_scheduler_status(self) -> Dict:
        """Get current scheduler status."""
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run_time': job.next_run_time.isoformat() if job.next_run_time else None,
                'trigger': str(job.trigger)
            })

        return {
            'running': self.scheduler.running,
            'timezone': self.config.timezone,
            'jobs': jobs,
            'job_count': len(jobs),
            'targets': [status.model_dump(mode="json") for status in self.statuses.values()]
        }
