#!/usr/bin/env python3
"""
Main entry point for the delete-by-query orchestrator.

Launches a delete-by-query task and relaunches it until it completes
without any failure. Ctrl+C (or SIGTERM) cancels the running task before
exiting; a second Ctrl+C exits immediately.

Usage:
    dbq-orchestrator '{"range":{"lastIndexingDate":{"lte":"now-3y"}}}'
    dbq-orchestrator -i 'logs-*' -r 500 -s 1000 -p 60 '{"term":{"tenant":"acme"}}'
"""

import argparse
import asyncio
import contextlib
import json
import logging
import math
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .cancellation import FORCED_EXIT_CODE, CancellationToken, SignalWatcher
from .config import RunConfig
from .control_loop import DeleteByQuerySupervisor
from .errors import ConfigError
from .logging_config import setup_logging
from .models import RunOutcome
from .task_client import RemoteTaskClient

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STARTUP_ERROR = 1
EXIT_ABORTED = FORCED_EXIT_CODE


def _json_query(value: str) -> Dict[str, Any]:
    try:
        query = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"query is not valid JSON: {e}")
    if not isinstance(query, dict):
        raise argparse.ArgumentTypeError("query must be a JSON object")
    return query


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {number}")
    return number


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}")
    if not math.isfinite(number) or number <= 0:
        raise argparse.ArgumentTypeError(f"expected a finite positive number, got {value}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="dbq-orchestrator",
        description="Run a delete-by-query and relaunch it until it completes without errors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "query",
        type=_json_query,
        help='JSON encoded query, eg: {"range":{"lastIndexingDate":{"lte":"now-3y"}}}',
    )
    parser.add_argument("-i", "--index", help="Index pattern (default: *)")
    parser.add_argument("-u", "--url", help="Base URL of the store (default: http://localhost:9200)")
    parser.add_argument(
        "-r", "--requests-per-seconds",
        dest="requests_per_second",
        type=_positive_int,
        help="Throttle of the delete-by-query in requests per second (default: 100)",
    )
    parser.add_argument(
        "-s", "--scroll-size",
        type=_positive_int,
        help="Batch size of each scroll request (default: store default)",
    )
    parser.add_argument(
        "-p", "--pause-on-errors",
        type=_positive_float,
        help="Seconds to wait before relaunching after an error (default: 300)",
    )
    parser.add_argument(
        "--poll-interval",
        type=_positive_float,
        help="Seconds between two task status checks (default: 10)",
    )
    parser.add_argument(
        "--cancel-timeout",
        type=_positive_float,
        help="Seconds to wait for a cancel acknowledgment on interrupt (default: 30)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging (shows deletion progress)",
    )
    return parser


def build_config(args: argparse.Namespace) -> RunConfig:
    """Resolve the run configuration from the environment and parsed flags."""
    return RunConfig.from_env(
        args.query,
        index=args.index,
        url=args.url,
        requests_per_second=args.requests_per_second,
        scroll_size=args.scroll_size,
        pause_on_errors=args.pause_on_errors,
        poll_interval=args.poll_interval,
        cancel_timeout=args.cancel_timeout,
    )


async def run_supervisor(
    config: RunConfig,
    token: Optional[CancellationToken] = None,
    handle_signals: bool = True,
) -> RunOutcome:
    """Supervise one delete-by-query run until it completes or is cancelled."""
    token = token or CancellationToken()

    async with RemoteTaskClient.create(config) as client:
        supervisor = DeleteByQuerySupervisor(config, client, token)
        watcher = SignalWatcher(token) if handle_signals else contextlib.nullcontext()
        with watcher:
            return await supervisor.run()


def exit_code_for(outcome: RunOutcome) -> int:
    return EXIT_OK if outcome.success else EXIT_ABORTED


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with command line argument handling."""
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.verbose else None)

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error(f"[STARTUP] Invalid configuration: {e}")
        return EXIT_STARTUP_ERROR

    logger.debug(f"[STARTUP] Configuration: {config.describe()}")
    logger.debug(f"[STARTUP] Query: {json.dumps(config.query)}")

    try:
        outcome = asyncio.run(run_supervisor(config))
    except KeyboardInterrupt:
        # Only reachable where signal handlers could not be installed
        logger.warning("Orchestrator stopped by user")
        return EXIT_ABORTED
    except Exception as e:
        logger.exception(f"Orchestrator failed: {e}")
        return EXIT_STARTUP_ERROR

    return exit_code_for(outcome)


if __name__ == "__main__":
    sys.exit(main())
