"""
Test cases for the cycle logger.
"""

from structlog.testing import capture_logs

from tracker.models import CycleOutcome, CyclePhase
from utilities.logger import CycleLogger


class TestCycleLogger:
    """Test cases for CycleLogger."""

    def test_phase_event_shape(self):
        """Phase events carry target, phase, outcome and detail."""
        with capture_logs() as logs:
            CycleLogger("oracle-cpu").log_phase(CyclePhase.FETCHING, "ok", locator="https://example.com/")

        assert logs == [{
            "event": "Cycle phase",
            "log_level": "info",
            "target_id": "oracle-cpu",
            "phase": "fetching",
            "outcome": "ok",
            "detail": None,
            "locator": "https://example.com/",
        }]

    def test_levels_follow_outcome(self):
        """Failures and changes are raised above info."""
        with capture_logs() as logs:
            cycle_logger = CycleLogger("oracle-cpu")
            cycle_logger.log_phase(CyclePhase.FETCHING, CycleOutcome.FETCH_FAILED, "HTTP 503")
            cycle_logger.log_phase(CyclePhase.COMPARING, CycleOutcome.CHANGED)
            cycle_logger.log_phase(CyclePhase.PERSISTING, CycleOutcome.PERSISTENCE_FAILED)
            cycle_logger.log_phase(CyclePhase.COMPARING, CycleOutcome.UNCHANGED)

        assert [entry["log_level"] for entry in logs] == ["warning", "warning", "error", "info"]
        assert logs[0]["detail"] == "HTTP 503"

    def test_cycle_complete(self):
        """Completion events report outcome and duration."""
        with capture_logs() as logs:
            CycleLogger("oracle-cpu").log_cycle_complete(CycleOutcome.UNCHANGED, 0.12345, first_run=True)

        assert logs[0]["event"] == "Cycle completed"
        assert logs[0]["outcome"] == "unchanged"
        assert logs[0]["first_run"] is True
        assert logs[0]["duration_seconds"] == 0.123
