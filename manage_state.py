#!/usr/bin/env python3
"""
State Management Utility

This script provides utilities to manage stored values:
- List all state records
- Show the record of one target
- Reset (forget) a target so its next cycle is a first run
- Set a target's stored value by hand
- Clean up records whose target is no longer configured
"""

import sys
from pathlib import Path
from typing import List, Optional

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import structlog
from utilities.logger import setup_logging
from utilities.config import config
from scheduler.bootstrap import build_state_store, load_configured_targets
from tracker.exceptions import InvalidConfiguration, StorageUnavailable
from tracker.models import EXIT_CODES, EXIT_INVALID_CONFIGURATION, CycleOutcome
from tracker.state_store import StateStore

logger = structlog.get_logger(__name__)

USAGE = """Usage: python manage_state.py [list|show|reset|set|cleanup] [target_id] [value]

Commands:
  list     - List all state records
  show     - Show the stored value of a target
  reset    - Forget the stored value of a target
  set      - Overwrite the stored value of a target
  cleanup  - Remove records of targets missing from the targets file

Examples:
  python manage_state.py list
  python manage_state.py show oracle-cpu
  python manage_state.py reset oracle-cpu
  python manage_state.py set oracle-cpu "January 2024"
  python manage_state.py cleanup"""


def list_records(store: StateStore) -> int:
    """List all state records."""
    records = store.list_records()
    if not records:
        print("No state records found")
        return 0

    print(f"Found {len(records)} state records:")
    print()
    for i, record in enumerate(records, 1):
        print(f"{i:3d}. Target: {record.target_id}")
        print(f"     Value: {record.value!r}")
        print(f"     Observed: {record.observed_at.isoformat()}")
    return 0


def show_record(store: StateStore, target_id: str) -> int:
    """Show the stored value of one target."""
    record = store.load(target_id)
    if record is None:
        print(f"No stored value for '{target_id}' (next cycle is a first run)")
        return 1

    print(f"Target: {record.target_id}")
    print(f"Value: {record.value!r}")
    print(f"Observed: {record.observed_at.isoformat()}")
    return 0


def reset_record(store: StateStore, target_id: str) -> int:
    """Forget the stored value of a target."""
    if store.delete(target_id):
        logger.info("State record reset", target_id=target_id)
        print(f"Reset '{target_id}'")
        return 0
    print(f"No stored value for '{target_id}'")
    return 1


def set_record(store: StateStore, target_id: str, value: str) -> int:
    """Overwrite the stored value of a target."""
    record = store.save(target_id, value.strip())
    logger.info("State record set by hand", target_id=target_id, value=record.value)
    print(f"Stored {record.value!r} for '{target_id}'")
    return 0


def cleanup_orphaned_records(store: StateStore, configured_ids: List[str]) -> int:
    """Remove records whose target is no longer configured."""
    orphaned = [record.target_id for record in store.list_records() if record.target_id not in configured_ids]
    for target_id in orphaned:
        store.delete(target_id)
        logger.info("Orphaned state record removed", target_id=target_id)

    if orphaned:
        print(f"Removed {len(orphaned)} orphaned records: {', '.join(orphaned)}")
    else:
        print("No orphaned records found")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(USAGE)
        return 1

    command = argv[0].lower()

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    store = build_state_store(config)

    try:
        if command == "list":
            return list_records(store)
        if command in ("show", "reset"):
            if len(argv) < 2:
                print(f"Error: target id required for {command} command")
                return 1
            handler = show_record if command == "show" else reset_record
            return handler(store, argv[1])
        if command == "set":
            if len(argv) < 3:
                print("Error: target id and value required for set command")
                return 1
            return set_record(store, argv[1], argv[2])
        if command == "cleanup":
            configured_ids = [target.id for target in load_configured_targets(config)]
            return cleanup_orphaned_records(store, configured_ids)
    except (StorageUnavailable, InvalidConfiguration) as e:
        logger.error("State management failed", command=command, error=str(e))
        print(f"Error: {e}")
        if isinstance(e, StorageUnavailable):
            return EXIT_CODES[CycleOutcome.STORAGE_UNAVAILABLE]
        return EXIT_INVALID_CONFIGURATION

    print(f"Unknown command: {command}")
    print("Available commands: list, show, reset, set, cleanup")
    return 1


if __name__ == "__main__":
    sys.exit(main())
