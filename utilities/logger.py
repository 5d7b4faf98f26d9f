"""
Structured logging built on structlog.
Provides JSON or console output and the per-cycle phase logger.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Optional, Union
import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[Union[str, Path]] = None,
    debug: bool = False
) -> None:
    """
    Configure structlog and the stdlib root logger for this process.

    Args:
        log_level: Name of a stdlib logging level
        log_format: Output format (json or console)
        log_file: Also write rendered events to this file
        debug: Add call site information to every event
    """
    level = getattr(logging, log_level.upper())

    # structlog renders; stdlib only routes the finished line
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # File logs receive the same rendered lines
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        logging.getLogger().addHandler(file_handler)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structlog logger for a module.

    Args:
        name: Dotted module name

    Returns:
        Bound logger using the processor chain from setup_logging
    """
    return structlog.get_logger(name)


class CycleLogger:
    """
    Logger for detection cycle transitions.

    Every event carries ``target_id``, ``phase``, ``outcome`` and
    ``detail``; the timestamp is added by the processor chain.
    """

    # Outcomes that deserve more than an info line
    WARNING_OUTCOMES = {"fetch_failed", "extraction_failed", "changed"}
    ERROR_OUTCOMES = {"storage_unavailable", "persistence_failed"}

    def __init__(self, target_id: str, name: str = "tracker.cycle"):
        self.target_id = target_id
        self.logger = structlog.get_logger(name).bind(target_id=target_id)

    def log_phase(self, phase: Any, outcome: Any, detail: Optional[str] = None, **extra: Any) -> None:
        """Log one phase transition."""
        phase = getattr(phase, "value", phase)
        outcome = getattr(outcome, "value", outcome)

        if outcome in self.ERROR_OUTCOMES:
            level = "error"
        elif outcome in self.WARNING_OUTCOMES:
            level = "warning"
        else:
            level = "info"

        getattr(self.logger, level)(
            "Cycle phase",
            phase=phase,
            outcome=outcome,
            detail=detail,
            **extra
        )

    def log_cycle_complete(self, outcome: Any, duration_seconds: float, first_run: bool = False) -> None:
        """Log the end of a cycle."""
        self.logger.info(
            "Cycle completed",
            outcome=getattr(outcome, "value", outcome),
            first_run=first_run,
            duration_seconds=round(duration_seconds, 3)
        )
