"""
Run-once entry point for the TokenWatch change tracker.

Checks one target given on the command line, or every target of a
targets file, once. Exit status is 0 when every cycle ran (changed or
not) and nonzero when a fetch, extraction or storage step failed.

Examples:
    python main.py --id oracle-cpu --url https://www.oracle.com/security-alerts/ \\
        --pattern "Critical Patch Update - (\\w+ \\d{4})"
    python main.py --targets-file targets.json --only oracle-cpu
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from scheduler.bootstrap import build_scheduler_config, build_service
from scheduler.models import FirstRunPolicy
from tracker.exceptions import InvalidConfiguration
from tracker.models import EXIT_INVALID_CONFIGURATION, CycleResult, Target
from tracker.state_store import FileStateStore
from tracker.targets import build_target, load_targets
from utilities.config import TrackerConfig, config as default_config
from utilities.logger import get_logger, setup_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tokenwatch",
        description="Fetch a document, extract a token and report whether it changed."
    )

    source = parser.add_argument_group("targets file")
    source.add_argument("--targets-file", help="JSON file with target definitions")
    source.add_argument("--only", action="append", metavar="ID", help="Only check this target (repeatable)")

    single = parser.add_argument_group("single target")
    single.add_argument("--id", dest="target_id", help="Target identifier (names the state record)")
    single.add_argument("--url", help="Document to fetch")
    single.add_argument("--name", help="Human readable target name")
    rule = single.add_mutually_exclusive_group()
    rule.add_argument("--pattern", help="Regular expression with one capturing group")
    rule.add_argument("--json-path", help="Dotted path into a JSON document")
    single.add_argument("--group", help="Capture group index or name")
    single.add_argument("--ignore-case", action="store_true", help="Case-insensitive pattern")
    single.add_argument("--timeout-ms", type=int, help="Fetch timeout in milliseconds")
    single.add_argument("--user-agent", help="User-Agent header to send")

    parser.add_argument("--first-run", choices=[policy.value for policy in FirstRunPolicy],
                        help="Baseline silently or alert on a target's first observation")
    parser.add_argument("--state-dir", help="Directory holding state records")
    parser.add_argument("--log-level", help="Logging level")
    parser.add_argument("--log-format", choices=["json", "console"], help="Log output format")

    return parser.parse_args(argv)


def resolve_targets(args: argparse.Namespace, config: TrackerConfig) -> List[Target]:
    """
    Build the targets to check from the arguments.

    Raises:
        InvalidConfiguration: Incomplete or invalid target definition
    """
    defaults = config.get_target_defaults()

    if args.target_id or args.url:
        if not (args.target_id and args.url and (args.pattern or args.json_path)):
            raise InvalidConfiguration("--id, --url and one of --pattern/--json-path are required together")

        if args.json_path:
            rule = {"kind": "json", "path": args.json_path}
        else:
            group = args.group
            if group is not None and group.isdecimal():
                group = int(group)
            rule = {"kind": "regex", "pattern": args.pattern, "group": group, "ignore_case": args.ignore_case}

        return [build_target(
            {
                "id": args.target_id,
                "name": args.name,
                "locator": args.url,
                "extraction_rule": rule,
                "timeout_ms": args.timeout_ms,
                "user_agent": args.user_agent,
            },
            defaults
        )]

    targets = load_targets(args.targets_file or config.get_targets_file_path(), defaults=defaults)
    if args.only:
        unknown = set(args.only) - {target.id for target in targets}
        if unknown:
            raise InvalidConfiguration(f"Unknown target id(s): {', '.join(sorted(unknown))}")
        targets = [target for target in targets if target.id in args.only]
    return targets


def exit_status(results: List[CycleResult]) -> int:
    """Worst exit code across results, 0 when every cycle ran."""
    return max((result.exit_code for result in results), default=0)


def print_result(result: CycleResult) -> None:
    line = f"{result.target_id}: {result.outcome.value}"
    if result.first_run:
        line += " (first run)"
    if result.change_event is not None:
        line += f" - {result.change_event.summary}"
    elif result.current_value is not None:
        line += f" - value '{result.current_value}'"
    if result.error is not None:
        line += f" - {result.error.message}"
    print(line)


async def run(args: argparse.Namespace, config: TrackerConfig) -> int:
    """Check the requested targets once and return the exit status."""
    logger = get_logger(__name__)

    try:
        targets = resolve_targets(args, config)
    except InvalidConfiguration as e:
        logger.error("Invalid configuration", error=str(e))
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_INVALID_CONFIGURATION

    scheduler_config = build_scheduler_config(config)
    if args.first_run:
        scheduler_config = scheduler_config.model_copy(update={"first_run_policy": FirstRunPolicy(args.first_run)})

    state_store = None
    if args.state_dir:
        state_store = FileStateStore(args.state_dir, format=config.state_format)

    service = build_service(config, targets, state_store=state_store, scheduler_config=scheduler_config)
    results = await service.start(run_once=True)

    for result in results:
        print_result(result)
    return exit_status(results)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to run the tracker once."""
    args = parse_args(argv)
    config = default_config

    setup_logging(
        log_level=args.log_level or config.log_level,
        log_format=args.log_format or config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    return asyncio.run(run(args, config))


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
