"""
Pydantic models for targets, stored state and cycle results.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .exceptions import FetchFailureKind
from .extraction import ExtractionRule


TARGET_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Target(BaseModel):
    """
    A monitored source: where to fetch and how to extract the token.
    Targets are immutable and passed into every operation.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        pattern=TARGET_ID_PATTERN,
        max_length=128,
        description="Stable identifier, also used to name the state record"
    )
    locator: str = Field(..., min_length=1, description="URI of the document to fetch")
    extraction_rule: ExtractionRule = Field(..., description="How to pull the token out of the document")
    timeout_ms: int = Field(default=30000, gt=0, description="Fetch timeout in milliseconds")
    user_agent: Optional[str] = Field(default=None, description="User-Agent presented to the server")
    name: Optional[str] = Field(default=None, description="Human readable label")

    @property
    def display_name(self) -> str:
        return self.name or self.id


class StateRecord(BaseModel):
    """Last observed value for a target."""
    target_id: str = Field(..., description="Target identifier")
    value: str = Field(..., description="Normalized observed value")
    observed_at: datetime = Field(default_factory=utcnow, description="When the value was stored")


class ChangeEvent(BaseModel):
    """A detected change, handed to notification sinks and then discarded."""
    target_id: str = Field(..., description="Target identifier")
    previous_value: Optional[str] = Field(default=None, description="Value before the change, None on first run")
    current_value: str = Field(..., description="Newly observed value")
    occurred_at: datetime = Field(default_factory=utcnow)

    # Context for notifications
    target_name: Optional[str] = Field(default=None)
    locator: Optional[str] = Field(default=None)

    @property
    def summary(self) -> str:
        label = self.target_name or self.target_id
        if self.previous_value is None:
            return f"{label}: first observed value '{self.current_value}'"
        return f"{label} changed from '{self.previous_value}' to '{self.current_value}'"


class CycleOutcome(str, Enum):
    """Classified outcome of one detection cycle."""
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FETCH_FAILED = "fetch_failed"
    EXTRACTION_FAILED = "extraction_failed"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    PERSISTENCE_FAILED = "persistence_failed"


class CyclePhase(str, Enum):
    """Phases of a detection cycle, used for structured log events."""
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    COMPARING = "comparing"
    PERSISTING = "persisting"


# Process exit status per outcome; a clean run exits 0 whether or not the value changed
EXIT_CODES = {
    CycleOutcome.UNCHANGED: 0,
    CycleOutcome.CHANGED: 0,
    CycleOutcome.FETCH_FAILED: 2,
    CycleOutcome.EXTRACTION_FAILED: 3,
    CycleOutcome.STORAGE_UNAVAILABLE: 4,
    CycleOutcome.PERSISTENCE_FAILED: 5,
}

EXIT_INVALID_CONFIGURATION = 1


class CycleError(BaseModel):
    """Cause of a failed cycle."""
    kind: str = Field(..., description="Failure classification")
    message: str = Field(..., description="Human readable cause")
    status_code: Optional[int] = Field(default=None, description="HTTP status when the server answered")

    @classmethod
    def for_fetch(cls, kind: FetchFailureKind, message: str, status_code: Optional[int] = None) -> "CycleError":
        return cls(kind=kind.value, message=message, status_code=status_code)


class CycleResult(BaseModel):
    """Result of one fetch-extract-compare-persist pass."""
    target_id: str
    outcome: CycleOutcome
    first_run: bool = Field(default=False, description="No prior state existed for the target")

    previous_value: Optional[str] = Field(default=None)
    current_value: Optional[str] = Field(default=None)
    change_event: Optional[ChangeEvent] = Field(default=None)
    error: Optional[CycleError] = Field(default=None)

    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = Field(default=None)

    @computed_field
    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def succeeded(self) -> bool:
        return self.outcome in (CycleOutcome.UNCHANGED, CycleOutcome.CHANGED)

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.outcome]
