"""
Exception hierarchy for the tracker.

Only configuration problems are meant to escape to the caller. Fetch and
storage errors are raised by collaborators and converted into classified
cycle results by the change detector.
"""

from enum import Enum
from typing import Optional


class TrackerError(Exception):
    """Base class for all tracker errors."""


class InvalidConfiguration(TrackerError):
    """A target, extraction rule or targets file is malformed."""


class FetchFailureKind(str, Enum):
    """Classification of fetch failures."""
    NETWORK_UNREACHABLE = "network_unreachable"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    DECODE = "decode"


class FetchError(TrackerError):
    """Raised by fetch collaborators when a document could not be retrieved."""

    def __init__(
        self,
        kind: FetchFailureKind,
        message: str,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"FetchError(kind={self.kind.value!r}, status_code={self.status_code!r}, message={str(self)!r})"


class StorageUnavailable(TrackerError):
    """The state store could not be read or written."""
