"""
Models for scheduler, change detection and alerting configuration.

This module defines Pydantic models for:
- First-run policy
- Alert configurations
- Scheduler configuration
- Per-target run status
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from tracker.models import CycleOutcome


class FirstRunPolicy(str, Enum):
    """What to do when a target has no stored value yet."""
    BASELINE = "baseline"  # store silently, report unchanged
    ALERT = "alert"  # store and report a change with no previous value


class AlertConfig(BaseModel):
    """Configuration for the notification sinks."""
    enabled: bool = Field(default=True)
    log_enabled: bool = Field(default=True)

    # Webhook delivery
    webhook_url: Optional[str] = Field(default=None, description="POST change events here when set")
    webhook_timeout_ms: int = Field(default=10000, gt=0)

    # Rate limiting, per target
    max_alerts_per_hour: int = Field(default=10, ge=1)
    alert_cooldown_minutes: int = Field(default=0, ge=0)

    # A change that could not be persisted will be detected again next cycle
    alert_on_persistence_failure: bool = Field(default=True)


class SchedulerConfig(BaseModel):
    """Configuration for the scheduler system."""
    # Scheduling
    poll_interval_minutes: int = Field(default=360, ge=1, description="Minutes between cycles of a target")
    timezone: str = Field(default="UTC", description="Timezone for scheduling")

    # Performance
    max_concurrent_targets: int = Field(default=5, ge=1, le=50, description="Max targets checked concurrently")

    # Change detection
    first_run_policy: FirstRunPolicy = Field(default=FirstRunPolicy.BASELINE)

    # Alerting
    alert_config: AlertConfig = Field(default_factory=AlertConfig)


class TargetStatus(BaseModel):
    """Last known run status of a target."""
    target_id: str
    last_outcome: Optional[CycleOutcome] = Field(default=None)
    last_run_at: Optional[datetime] = Field(default=None)
    last_value: Optional[str] = Field(default=None)
    last_error: Optional[str] = Field(default=None)
    consecutive_failures: int = Field(default=0)
