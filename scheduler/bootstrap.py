"""
Wiring of the tracker components from configuration.

Entry points (run-once CLI, daemon, API) build their object graph here so
they all agree on the state store, fetcher and alerting setup.
"""

from typing import List, Optional, Sequence

from asyncio_throttle import Throttler

from scheduler.alerting import NotificationDispatcher, build_dispatcher
from scheduler.change_detector import ChangeDetector
from scheduler.models import AlertConfig, FirstRunPolicy, SchedulerConfig
from scheduler.scheduler_service import SchedulerService
from tracker.fetcher import Fetch, HttpFetcher
from tracker.models import Target
from tracker.state_store import FileStateStore, StateStore
from tracker.targets import load_targets
from utilities.config import TrackerConfig


def build_alert_config(config: TrackerConfig) -> AlertConfig:
    return AlertConfig(
        enabled=config.alerting_enabled,
        webhook_url=config.webhook_url,
        webhook_timeout_ms=config.webhook_timeout_ms,
        max_alerts_per_hour=config.max_alerts_per_hour,
        alert_cooldown_minutes=config.alert_cooldown_minutes,
        alert_on_persistence_failure=config.alert_on_persistence_failure
    )


def build_scheduler_config(config: TrackerConfig) -> SchedulerConfig:
    return SchedulerConfig(
        poll_interval_minutes=config.poll_interval_minutes,
        timezone=config.timezone,
        max_concurrent_targets=config.max_concurrent_targets,
        first_run_policy=FirstRunPolicy(config.first_run_policy),
        alert_config=build_alert_config(config)
    )


def build_state_store(config: TrackerConfig) -> FileStateStore:
    return FileStateStore(config.get_state_dir_path(), format=config.state_format)


def build_fetcher(config: TrackerConfig) -> HttpFetcher:
    return HttpFetcher(
        headers=config.get_headers(),
        throttler=Throttler(rate_limit=config.rate_limit_per_second)
    )


def load_configured_targets(config: TrackerConfig) -> List[Target]:
    """Load the targets file named by the configuration."""
    return load_targets(config.get_targets_file_path(), defaults=config.get_target_defaults())


def build_service(
    config: TrackerConfig,
    targets: Sequence[Target],
    state_store: Optional[StateStore] = None,
    fetch: Optional[Fetch] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    scheduler_config: Optional[SchedulerConfig] = None
) -> SchedulerService:
    """
    Build a scheduler service; any collaborator can be swapped out.

    Args:
        config: Tracker configuration
        targets: Targets to monitor
        state_store: Defaults to the configured file store
        fetch: Defaults to the throttled HTTP fetcher
        dispatcher: Defaults to the sinks described by the configuration
        scheduler_config: Defaults to values from the configuration
    """
    scheduler_config = scheduler_config or build_scheduler_config(config)
    detector = ChangeDetector(
        state_store=state_store if state_store is not None else build_state_store(config),
        fetch=fetch if fetch is not None else build_fetcher(config),
        first_run_policy=scheduler_config.first_run_policy
    )
    if dispatcher is None:
        dispatcher = build_dispatcher(scheduler_config.alert_config)
    return SchedulerService(scheduler_config, targets, detector, dispatcher)
