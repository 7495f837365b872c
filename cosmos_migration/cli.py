"""
Command Line Interface
Entry point for migrating a container into one with hierarchical partition keys
"""
import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .config.manager import DEFAULT_CONFIG_FILE, AppSettings, ConfigManager
from .core.database import ThroughputMode
from .core.errors import ConfigurationError, MigrationAbortedError, MigrationError
from .monitoring.metrics import MigrationReport
from .monitoring.reporters import CompositeReporter, LoggingReporter, MigrationReporter, ProgressBarReporter
from .runner import MigrationRunner
from .selection.base import ContainerSelector, StaticSelector
from .selection.console import ConsoleSelector

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cosmos-migrate",
        description="Copy a Cosmos DB container into a container with hierarchical partition keys",
    )
    parser.add_argument('--config', '-c', default=DEFAULT_CONFIG_FILE,
                        help='Settings file, JSON or YAML (default: appsettings.json)')
    parser.add_argument('--source-container', '-s',
                        help='Source container name or number; skips the interactive prompt')
    parser.add_argument('--destination-container', '-d',
                        help='Destination container name or number; created when it does not exist')
    parser.add_argument('--partition-key', '-k', action='append', dest='partition_keys', default=None,
                        help='Partition key path for a new destination container (repeat for each level)')
    parser.add_argument('--throughput', choices=[mode.value for mode in ThroughputMode],
                        default=ThroughputMode.AUTOSCALE.value,
                        help='Throughput for a new destination container (default: autoscale)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Read and validate without writing to the destination')
    parser.add_argument('--batch-size', type=int,
                        help='Report progress every N documents')
    parser.add_argument('--yes', '-y', action='store_true',
                        help='Proceed without confirmation in non-interactive mode')
    parser.add_argument('--no-progress-bar', action='store_true',
                        help='Disable the progress bar')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: LogLevel setting)')
    return parser


def configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler('migration.log')
        ]
    )


def apply_overrides(settings: AppSettings, args: argparse.Namespace) -> AppSettings:
    """Command line options win over the settings file and environment"""
    updates = {}
    if args.dry_run:
        updates["dry_run"] = True
    if args.batch_size is not None:
        if args.batch_size <= 0:
            raise ConfigurationError("--batch-size must be greater than 0")
        updates["batch_size"] = args.batch_size
    if not updates:
        return settings
    return settings.model_copy(update={"migration_settings": settings.migration_settings.model_copy(update=updates)})


def build_selector(args: argparse.Namespace) -> ContainerSelector:
    if args.source_container and args.destination_container:
        return StaticSelector(
            source=args.source_container,
            destination=args.destination_container,
            partition_key_paths=args.partition_keys,
            throughput=ThroughputMode(args.throughput),
            assume_yes=args.yes,
        )
    return ConsoleSelector()


def build_reporter(settings: AppSettings, show_progress_bar: bool) -> MigrationReporter:
    reporters: List[MigrationReporter] = [LoggingReporter(settings.migration_settings.max_errors_to_display)]
    if show_progress_bar:
        reporters.append(ProgressBarReporter())
    return CompositeReporter(reporters)


def exit_code_for(report: Optional[MigrationReport]) -> int:
    if report is None or report.completed:
        return EXIT_OK
    if report.abort_reason == "cancelled":
        return EXIT_CANCELLED
    return EXIT_FAILURE


def install_signal_handlers(cancel_event: asyncio.Event):
    """SIGINT/SIGTERM request a stop at the next page boundary; a second signal interrupts immediately"""
    loop = asyncio.get_running_loop()

    def handle_signal(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning(f"Received signal {signum}, stopping after the current page...")
        loop.call_soon_threadsafe(cancel_event.set)

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)


async def run(args: argparse.Namespace) -> int:
    show_detailed_errors = True
    try:
        settings = ConfigManager().load_config(args.config)
        settings = apply_overrides(settings, args)
        show_detailed_errors = settings.migration_settings.show_detailed_errors
        if args.log_level is None:
            logging.getLogger().setLevel(settings.log_level.upper())

        logger.info("🚀 Cosmos DB Hierarchical Partition Key Migration")

        cancel_event = asyncio.Event()
        install_signal_handlers(cancel_event)

        runner = MigrationRunner(
            settings,
            build_selector(args),
            reporter=build_reporter(settings, not args.no_progress_bar),
            cancel_event=cancel_event,
        )
        report = await runner.run()
        return exit_code_for(report)

    except MigrationAbortedError as e:
        logger.error(f"❌ {e}")
        return EXIT_FAILURE
    except MigrationError as e:
        if show_detailed_errors:
            logger.exception(f"❌ Migration failed: {e}")
        else:
            logger.error(f"❌ Migration failed: {e}")
        return EXIT_FAILURE


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or "INFO")
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Migration interrupted by user")
        return EXIT_CANCELLED


if __name__ == "__main__":
    sys.exit(main())
