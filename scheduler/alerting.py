"""
Notification sinks for detected changes.

This module provides:
- The NotificationSink callback contract
- Log-based alerting with per-target rate limiting and cooldown
- Webhook delivery of change events
- A dispatcher that isolates sink failures from the caller
"""

import inspect
from datetime import datetime, timedelta
from typing import Any, Awaitable, Dict, List, Optional, Protocol, Sequence, Union

import httpx
import structlog

from scheduler.models import AlertConfig
from tracker.models import ChangeEvent, utcnow

logger = structlog.get_logger(__name__)


class NotificationSink(Protocol):
    """Receives change events. May be synchronous or a coroutine function."""

    def on_change(self, event: ChangeEvent) -> Union[None, Awaitable[None]]: ...


class LogNotificationSink:
    """Logs change alerts, rate limited per target."""

    def __init__(self, alert_config: AlertConfig):
        """
        Initialize log sink.

        Args:
            alert_config: Alert configuration
        """
        self.config = alert_config
        self.logger = logger.bind(component="log_sink")
        self.alert_history: Dict[str, List[datetime]] = {}  # Track alert history for rate limiting
        self.last_alert_times: Dict[str, datetime] = {}  # Track last alert times for cooldown

    def on_change(self, event: ChangeEvent) -> None:
        if not self._check_rate_limit(event.target_id):
            self.logger.warning("Change alert rate limited", target_id=event.target_id)
            return
        if not self._check_cooldown(event.target_id):
            self.logger.info("Change alert suppressed by cooldown", target_id=event.target_id)
            return

        self.logger.warning(
            "Change detection alert",
            message=event.summary,
            target_id=event.target_id,
            previous_value=event.previous_value,
            current_value=event.current_value,
            locator=event.locator,
            occurred_at=event.occurred_at.isoformat()
        )
        self._update_alert_history(event.target_id)

    def _check_rate_limit(self, target_id: str) -> bool:
        """Check if alert is within rate limit."""
        hour_ago = utcnow() - timedelta(hours=1)
        recent_alerts = [
            time for time in self.alert_history.get(target_id, [])
            if time > hour_ago
        ]
        return len(recent_alerts) < self.config.max_alerts_per_hour

    def _check_cooldown(self, target_id: str) -> bool:
        """Check if alert is not in cooldown period."""
        last_alert_time = self.last_alert_times.get(target_id)
        if last_alert_time is None or self.config.alert_cooldown_minutes == 0:
            return True

        cooldown_period = timedelta(minutes=self.config.alert_cooldown_minutes)
        return utcnow() - last_alert_time >= cooldown_period

    def _update_alert_history(self, target_id: str) -> None:
        """Update alert history for rate limiting."""
        current_time = utcnow()
        hour_ago = current_time - timedelta(hours=1)

        history = [time for time in self.alert_history.get(target_id, []) if time > hour_ago]
        history.append(current_time)
        self.alert_history[target_id] = history
        self.last_alert_times[target_id] = current_time


class WebhookNotificationSink:
    """POSTs change events as JSON to a webhook."""

    def __init__(
        self,
        url: str,
        timeout_ms: int = 10000,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url
        self.timeout_ms = timeout_ms
        self.transport = transport
        self.logger = logger.bind(component="webhook_sink", url=url)

    async def on_change(self, event: ChangeEvent) -> None:
        payload = {
            "event": "change_detected",
            "summary": event.summary,
            **event.model_dump(mode="json"),
        }
        client_config: Dict[str, Any] = {"timeout": httpx.Timeout(self.timeout_ms / 1000.0)}
        if self.transport is not None:
            client_config["transport"] = self.transport

        async with httpx.AsyncClient(**client_config) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()

        self.logger.info("Delivered change webhook", target_id=event.target_id, status_code=response.status_code)


class NotificationDispatcher:
    """Fans change events out to sinks; a failing sink never reaches the caller."""

    def __init__(self, sinks: Sequence[NotificationSink], enabled: bool = True):
        self.sinks = list(sinks)
        self.enabled = enabled
        self.logger = logger.bind(component="notification_dispatcher")

    async def dispatch(self, event: ChangeEvent) -> int:
        """
        Deliver an event to every sink.

        Returns:
            Number of sinks that accepted the event
        """
        if not self.enabled:
            self.logger.debug("Alerting is disabled", target_id=event.target_id)
            return 0

        delivered = 0
        for sink in self.sinks:
            try:
                outcome = sink.on_change(event)
                if inspect.isawaitable(outcome):
                    await outcome
                delivered += 1
            except Exception as e:
                self.logger.error(
                    "Notification sink failed",
                    sink=type(sink).__name__,
                    target_id=event.target_id,
                    error=str(e)
                )
        return delivered


def build_dispatcher(alert_config: AlertConfig) -> NotificationDispatcher:
    """Build the dispatcher described by an alert configuration."""
    sinks: List[NotificationSink] = []
    if alert_config.log_enabled:
        sinks.append(LogNotificationSink(alert_config))
    if alert_config.webhook_url:
        sinks.append(WebhookNotificationSink(alert_config.webhook_url, alert_config.webhook_timeout_ms))
    return NotificationDispatcher(sinks, enabled=alert_config.enabled)
