"""
Status monitor for PostgreSQL hot standby servers
Shows how far each standby's replayed and received WAL trails the primary and
whether it can still stream or must recover from the archive
"""
import argparse
import logging
import signal
import sys

from rich.console import Console
from rich.logging import RichHandler

from db_config import (
    LOG_FORMAT,
    LOG_LEVEL,
    MONITORING_INTERVAL_SECONDS,
    ROUND_FAILURE_POLICY,
    WAL_SEGMENTS_PER_ID,
    DatabaseConfig,
)
from display import Dashboard, format_round_text
from monitor import StandbyStatusMonitor, poll_round
from snapshots import NodeDescriptor, PostgresNode
from status_errors import StandbyStatusError

logger = logging.getLogger("pg_standby_status")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Status monitor for PostgreSQL hot standby servers",
        epilog="DSNs are libpq connection strings, e.g. \"host=db1 port=5432\" or postgresql://db1:5432/postgres"
    )
    parser.add_argument("primary", metavar="PRIMARY_DSN", help="Connection string of the primary")
    parser.add_argument("replicas", metavar="STANDBY_DSN", nargs="*", help="Connection strings of the standbys")
    parser.add_argument(
        "--interval",
        type=float,
        default=MONITORING_INTERVAL_SECONDS,
        help=f"Seconds between poll rounds (default: {MONITORING_INTERVAL_SECONDS})"
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Monitoring duration in seconds (default: infinite)"
    )
    parser.add_argument(
        "--retry-failed-rounds",
        action="store_true",
        default=ROUND_FAILURE_POLICY == "retry",
        help="Keep polling when the primary cannot be queried instead of exiting"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single round, print it and exit"
    )
    return parser.parse_args(argv)


def build_nodes(args: argparse.Namespace):
    """Node descriptors are fixed here, in command line order, for the whole run"""
    primary = PostgresNode(
        NodeDescriptor(role="primary", config=DatabaseConfig.from_dsn(args.primary)),
        segments_per_id=WAL_SEGMENTS_PER_ID,
    )
    replicas = tuple(
        PostgresNode(NodeDescriptor(role="replica", config=DatabaseConfig.from_dsn(dsn)),
                     segments_per_id=WAL_SEGMENTS_PER_ID)
        for dsn in args.replicas
    )
    return primary, replicas


def run_once(primary, replicas, console: Console) -> int:
    try:
        result = poll_round(primary, replicas)
    except StandbyStatusError as e:
        logger.error(f"Round failed: {e}")
        return 1
    finally:
        for node in (primary,) + replicas:
            node.close()
    console.print(format_round_text(result), highlight=False, markup=False, soft_wrap=True)
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    console = Console()

    if console.is_terminal:
        # Log records are printed above the live dashboard instead of tearing it
        logging.basicConfig(
            level=LOG_LEVEL,
            format="%(name)s - %(message)s",
            handlers=[RichHandler(console=console, show_path=False)]
        )
    else:
        logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    try:
        primary, replicas = build_nodes(args)
    except ValueError as e:
        logger.error(str(e))
        return 2

    if args.once:
        return run_once(primary, replicas, console)

    with Dashboard(console=console) as dashboard:
        monitor = StandbyStatusMonitor(
            primary,
            replicas,
            renderer=dashboard,
            interval_seconds=args.interval,
            failure_policy="retry" if args.retry_failed_rounds else "fatal",
        )
        signal.signal(signal.SIGTERM, lambda signum, frame: monitor.stop())

        try:
            monitor.monitor(duration_seconds=args.duration)
        except StandbyStatusError as e:
            logger.error(f"Monitoring aborted: {e}")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
