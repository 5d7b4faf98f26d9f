"""
Durable storage of the last observed value per target.

The file store keeps one record per target and replaces it atomically:
the new record is written to a temporary file in the same directory,
flushed to disk and renamed over the old one, so a crash leaves either
the old or the new record and never a truncated one.
"""

import json
import os
import re
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

import structlog
from pydantic import ValidationError

from .exceptions import InvalidConfiguration, StorageUnavailable
from .models import TARGET_ID_PATTERN, StateRecord

logger = structlog.get_logger(__name__)


class StateStore(Protocol):
    """Interface every state store implements."""

    def load(self, target_id: str) -> Optional[StateRecord]: ...

    def save(self, target_id: str, value: str, observed_at: Optional[datetime] = None) -> StateRecord: ...

    def delete(self, target_id: str) -> bool: ...

    def list_records(self) -> List[StateRecord]: ...


class _TargetLocks:
    """One lock per target id so writes for the same target are serialized."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def for_target(self, target_id: str) -> threading.Lock:
        with self._guard:
            if target_id not in self._locks:
                self._locks[target_id] = threading.Lock()
            return self._locks[target_id]


class FileStateStore:
    """
    File-per-target state store.

    Formats:
        json: ``<target_id>.json`` holding target_id, value and observed_at
        text: ``<target_id>.txt`` holding only the value; observed_at is
              the file modification time
    """

    FORMATS = ("json", "text")

    def __init__(self, state_dir: Union[str, Path], format: str = "json"):
        """
        Initialize the store.

        Args:
            state_dir: Directory holding the state files (created on first save)
            format: Record format, ``json`` or ``text``
        """
        if format not in self.FORMATS:
            raise ValueError(f"format must be one of: {list(self.FORMATS)}")
        self.state_dir = Path(state_dir)
        self.format = format
        self._locks = _TargetLocks()
        self.logger = logger.bind(component="state_store", state_dir=str(self.state_dir))

    @property
    def suffix(self) -> str:
        return ".json" if self.format == "json" else ".txt"

    def path_for(self, target_id: str) -> Path:
        if not re.fullmatch(TARGET_ID_PATTERN, target_id):
            raise InvalidConfiguration(f"Invalid target id {target_id!r}")
        return self.state_dir / f"{target_id}{self.suffix}"

    def load(self, target_id: str) -> Optional[StateRecord]:
        """
        Load the record for a target.

        Returns:
            StateRecord, or None when the target was never observed

        Raises:
            StorageUnavailable: The record exists but cannot be read
        """
        path = self.path_for(target_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            self.logger.error("Failed to read state record", target_id=target_id, error=str(e))
            raise StorageUnavailable(f"Cannot read state for '{target_id}': {e}") from e

        if self.format == "text":
            try:
                mtime = path.stat().st_mtime
            except OSError as e:
                raise StorageUnavailable(f"Cannot stat state for '{target_id}': {e}") from e
            return StateRecord(
                target_id=target_id,
                value=raw,
                observed_at=datetime.fromtimestamp(mtime, tz=timezone.utc)
            )

        try:
            record = StateRecord(**json.loads(raw))
        except (ValueError, TypeError, ValidationError) as e:
            self.logger.error("Corrupt state record", target_id=target_id, path=str(path), error=str(e))
            raise StorageUnavailable(f"State record for '{target_id}' is unreadable: {e}") from e

        if record.target_id != target_id:
            raise StorageUnavailable(
                f"State file {path} belongs to '{record.target_id}', not '{target_id}'"
            )
        return record

    def save(self, target_id: str, value: str, observed_at: Optional[datetime] = None) -> StateRecord:
        """
        Atomically replace the record for a target.

        Raises:
            StorageUnavailable: The record could not be written; the
                previous record is left intact
        """
        record = StateRecord(
            target_id=target_id,
            value=value,
            observed_at=observed_at or datetime.now(timezone.utc)
        )
        if self.format == "json":
            payload = json.dumps(record.model_dump(mode="json"), indent=2)
        else:
            payload = record.value

        with self._locks.for_target(target_id):
            try:
                self.state_dir.mkdir(parents=True, exist_ok=True)
                self._atomic_write(self.path_for(target_id), payload)
                if self.format == "text":
                    timestamp = record.observed_at.timestamp()
                    os.utime(self.path_for(target_id), (timestamp, timestamp))
            except OSError as e:
                self.logger.error("Failed to write state record", target_id=target_id, error=str(e))
                raise StorageUnavailable(f"Cannot write state for '{target_id}': {e}") from e

        self.logger.debug("Saved state record", target_id=target_id, value=value)
        return record

    def _atomic_write(self, path: Path, payload: str) -> None:
        """Write to a temp file next to ``path``, fsync, then rename over it."""
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def delete(self, target_id: str) -> bool:
        """Forget a target's record. Returns False when there was none."""
        with self._locks.for_target(target_id):
            try:
                self.path_for(target_id).unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StorageUnavailable(f"Cannot delete state for '{target_id}': {e}") from e
        self.logger.info("Deleted state record", target_id=target_id)
        return True

    def list_records(self) -> List[StateRecord]:
        """
        Load every record in the state directory, sorted by target id.

        Unreadable records are logged and skipped so one corrupt file does
        not hide the others.
        """
        if not self.state_dir.exists():
            return []
        try:
            paths = sorted(self.state_dir.glob(f"*{self.suffix}"))
        except OSError as e:
            raise StorageUnavailable(f"Cannot list state directory {self.state_dir}: {e}") from e

        records = []
        for path in paths:
            if path.name.startswith("."):
                continue
            try:
                record = self.load(path.stem)
            except (StorageUnavailable, InvalidConfiguration) as e:
                self.logger.warning("Skipping unreadable state record", path=str(path), error=str(e))
                continue
            if record is not None:
                records.append(record)
        return records

    def is_available(self) -> bool:
        """Whether the state directory can be written (or created)."""
        directory = self.state_dir
        while not directory.exists():
            if directory.parent == directory:
                return False
            directory = directory.parent
        return os.access(directory, os.W_OK)


class MemoryStateStore:
    """In-process store, used by tests and ephemeral runs."""

    def __init__(self):
        self._records: Dict[str, StateRecord] = {}
        self._locks = _TargetLocks()

    def load(self, target_id: str) -> Optional[StateRecord]:
        return self._records.get(target_id)

    def save(self, target_id: str, value: str, observed_at: Optional[datetime] = None) -> StateRecord:
        record = StateRecord(
            target_id=target_id,
            value=value,
            observed_at=observed_at or datetime.now(timezone.utc)
        )
        with self._locks.for_target(target_id):
            self._records[target_id] = record
        return record

    def delete(self, target_id: str) -> bool:
        with self._locks.for_target(target_id):
            return self._records.pop(target_id, None) is not None

    def list_records(self) -> List[StateRecord]:
        return [self._records[key] for key in sorted(self._records)]

    def is_available(self) -> bool:
        return True
