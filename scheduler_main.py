"""
Main entry point for the change tracking daemon.

Loads the targets file and checks every target on a fixed interval.

Usage: python scheduler_main.py [--once]
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import structlog
from utilities.logger import setup_logging
from utilities.config import config
from scheduler.bootstrap import build_scheduler_config, build_service, load_configured_targets
from tracker.exceptions import InvalidConfiguration
from tracker.models import EXIT_INVALID_CONFIGURATION


async def main() -> int:
    """Main function to start the scheduler service."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    logger = structlog.get_logger(__name__)
    logger.info("Starting change tracking daemon")

    run_once = False
    if len(sys.argv) > 1:
        if sys.argv[1] == '--once':
            run_once = True
        else:
            print(f"Unknown argument: {sys.argv[1]}")
            print("Usage: python scheduler_main.py [--once]")
            return 2

    # Fail fast before any cycle runs
    try:
        targets = load_configured_targets(config)
    except InvalidConfiguration as e:
        logger.error("Invalid configuration", error=str(e))
        return EXIT_INVALID_CONFIGURATION

    if not targets:
        logger.warning("No targets configured", targets_file=config.targets_file)

    scheduler_config = build_scheduler_config(config)
    scheduler_service = build_service(config, targets, scheduler_config=scheduler_config)

    logger.info(
        "Scheduler service configured",
        targets=[target.id for target in targets],
        poll_interval_minutes=scheduler_config.poll_interval_minutes,
        timezone=scheduler_config.timezone,
        first_run_policy=scheduler_config.first_run_policy.value,
        state_dir=config.state_dir
    )

    if run_once:
        results = await scheduler_service.start(run_once=True)
        return max((result.exit_code for result in results), default=0)

    print("\n" + "=" * 60)
    print("DAEMON MODE")
    print("=" * 60)
    print(f"Targets: {len(targets)}")
    print(f"Interval: every {scheduler_config.poll_interval_minutes} minutes")
    print(f"State directory: {config.state_dir}")
    print("=" * 60)

    await scheduler_service.start()
    logger.info("Scheduler service exited")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
