"""
Change detection engine.

This module provides:
- The fetch -> extract -> compare -> persist cycle for one target
- Classification of every failure into a typed cycle outcome
- First-run baseline handling
"""

import asyncio
from typing import Optional

import structlog

from scheduler.models import FirstRunPolicy
from tracker.exceptions import FetchError, FetchFailureKind, StorageUnavailable
from tracker.extraction import extract, normalize
from tracker.fetcher import Fetch
from tracker.models import (
    ChangeEvent, CycleError, CycleOutcome, CyclePhase, CycleResult, Target, utcnow
)
from tracker.state_store import StateStore
from utilities.logger import CycleLogger

logger = structlog.get_logger(__name__)


class ChangeDetector:
    """
    Runs detection cycles.

    The detector keeps no state of its own between cycles; everything
    durable lives in the state store, so it can be rebuilt per cycle.
    Expected failures are returned as outcomes and never raised.
    """

    def __init__(
        self,
        state_store: StateStore,
        fetch: Fetch,
        first_run_policy: FirstRunPolicy = FirstRunPolicy.BASELINE
    ):
        """
        Initialize change detector.

        Args:
            state_store: Store holding the last observed value per target
            fetch: Async fetch collaborator
            first_run_policy: Whether a target's first observation alerts
        """
        self.state_store = state_store
        self.fetch = fetch
        self.first_run_policy = FirstRunPolicy(first_run_policy)
        self.logger = logger.bind(component="change_detector")

    async def run_cycle(self, target: Target) -> CycleResult:
        """
        Run one cycle for a target.

        Args:
            target: Target to check

        Returns:
            CycleResult classified as unchanged, changed, fetch_failed,
            extraction_failed, storage_unavailable or persistence_failed
        """
        cycle_logger = CycleLogger(target.id)
        result = CycleResult(target_id=target.id, outcome=CycleOutcome.UNCHANGED)

        # Fetching
        error = None
        content = None
        try:
            response = await asyncio.wait_for(
                self.fetch(target.locator, target.timeout_ms, target.user_agent),
                timeout=target.timeout_ms / 1000.0
            )
            if not 200 <= response.status_code < 300:
                error = CycleError.for_fetch(
                    FetchFailureKind.HTTP_STATUS,
                    f"{target.locator} answered with HTTP {response.status_code}",
                    status_code=response.status_code
                )
            else:
                content = response.content
        except FetchError as e:
            error = CycleError.for_fetch(e.kind, str(e), e.status_code)
        except asyncio.TimeoutError:
            error = CycleError.for_fetch(
                FetchFailureKind.TIMEOUT,
                f"Fetch did not complete within {target.timeout_ms} ms"
            )
        except Exception as e:
            error = CycleError(kind="unexpected", message=f"Fetch collaborator failed: {e!r}")

        if error is not None:
            cycle_logger.log_phase(
                CyclePhase.FETCHING, CycleOutcome.FETCH_FAILED, error.message,
                kind=error.kind, status_code=error.status_code
            )
            return self._finish(result, cycle_logger, CycleOutcome.FETCH_FAILED, error=error)
        cycle_logger.log_phase(CyclePhase.FETCHING, "ok", locator=target.locator)

        # Extracting
        try:
            current_value = extract(content, target.extraction_rule)
        except Exception as e:
            error = CycleError(kind="unexpected", message=f"Extraction failed: {e!r}")
        else:
            if current_value is None:
                error = CycleError(
                    kind="no_match",
                    message=f"Extraction rule found nothing in {target.locator}"
                )

        if error is not None:
            cycle_logger.log_phase(CyclePhase.EXTRACTING, CycleOutcome.EXTRACTION_FAILED, error.message)
            return self._finish(result, cycle_logger, CycleOutcome.EXTRACTION_FAILED, error=error)
        cycle_logger.log_phase(CyclePhase.EXTRACTING, "ok", value=current_value)
        result.current_value = current_value

        # Comparing
        try:
            prior = self.state_store.load(target.id)
        except Exception as e:
            message = str(e) if isinstance(e, StorageUnavailable) else f"State load failed: {e!r}"
            error = CycleError(kind="storage_unavailable", message=message)
            cycle_logger.log_phase(CyclePhase.COMPARING, CycleOutcome.STORAGE_UNAVAILABLE, message)
            return self._finish(result, cycle_logger, CycleOutcome.STORAGE_UNAVAILABLE, error=error)

        if prior is None:
            result.first_run = True
            if self.first_run_policy == FirstRunPolicy.ALERT:
                result.change_event = self._change_event(target, None, current_value)
                outcome = CycleOutcome.CHANGED
            else:
                outcome = CycleOutcome.UNCHANGED
            cycle_logger.log_phase(
                CyclePhase.COMPARING, outcome, "No prior value; establishing baseline",
                first_run=True, policy=self.first_run_policy.value
            )
            return self._persist(target, result, cycle_logger, outcome)

        previous_value = normalize(prior.value)
        result.previous_value = previous_value

        if previous_value == current_value:
            cycle_logger.log_phase(CyclePhase.COMPARING, CycleOutcome.UNCHANGED, value=current_value)
            return self._finish(result, cycle_logger, CycleOutcome.UNCHANGED)

        result.change_event = self._change_event(target, previous_value, current_value)
        cycle_logger.log_phase(
            CyclePhase.COMPARING, CycleOutcome.CHANGED, result.change_event.summary,
            previous_value=previous_value, current_value=current_value
        )
        return self._persist(target, result, cycle_logger, CycleOutcome.CHANGED)

    def _persist(
        self,
        target: Target,
        result: CycleResult,
        cycle_logger: CycleLogger,
        outcome: CycleOutcome
    ) -> CycleResult:
        """Store the current value; the reported outcome only stands if this succeeds."""
        try:
            self.state_store.save(target.id, result.current_value, utcnow())
        except Exception as e:
            message = str(e) if isinstance(e, StorageUnavailable) else f"State save failed: {e!r}"
            cycle_logger.log_phase(
                CyclePhase.PERSISTING, CycleOutcome.PERSISTENCE_FAILED,
                "Change detected but not persisted; the next cycle may alert again",
                error=message, current_value=result.current_value
            )
            error = CycleError(kind="storage_unavailable", message=message)
            return self._finish(result, cycle_logger, CycleOutcome.PERSISTENCE_FAILED, error=error)

        cycle_logger.log_phase(CyclePhase.PERSISTING, "saved", value=result.current_value)
        return self._finish(result, cycle_logger, outcome)

    def _change_event(self, target: Target, previous_value: Optional[str], current_value: str) -> ChangeEvent:
        return ChangeEvent(
            target_id=target.id,
            previous_value=previous_value,
            current_value=current_value,
            target_name=target.display_name,
            locator=target.locator
        )

    def _finish(
        self,
        result: CycleResult,
        cycle_logger: CycleLogger,
        outcome: CycleOutcome,
        error: Optional[CycleError] = None
    ) -> CycleResult:
        result.outcome = outcome
        result.error = error
        result.finished_at = utcnow()
        cycle_logger.log_cycle_complete(outcome, result.duration_seconds, first_run=result.first_run)
        return result
