"""
Command-line entry point.

Runs one download-and-restore pass with settings from a YAML file and/or
environment variables, treating the configured connection string as the
"target ready" notification:

    python -m database_restore --config restore.yaml

Exits with status 0 when the run ends in DONE and 1 otherwise.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from backup_download import LoggingProgressReporter, TqdmProgressReporter
from config import RestoreOpsSettings, load_settings
from restore_ops_exceptions import ConfigurationError
from .core.pipeline import RestorePipeline
from .models.entities import ResourceReadyEvent, RestoreResult

logger = logging.getLogger("database_restore")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="database_restore",
        description="Download a SQL Server backup from an Azure File Share and restore it"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML settings file (environment variables are used when omitted)"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured logging level"
    )
    return parser.parse_args(argv)


async def run(settings: RestoreOpsSettings) -> RestoreResult:
    """Run the pipeline once against the configured target."""
    if settings.monitoring.show_progress_bar:
        reporter = TqdmProgressReporter(description=settings.database.backup_file_name)
    else:
        reporter = LoggingProgressReporter()

    pipeline = RestorePipeline.from_settings(settings, progress_reporter=reporter)

    async def connection_string_provider() -> Optional[str]:
        return settings.database.connection_string

    event = ResourceReadyEvent(
        database_name=settings.database.database_name,
        connection_string_provider=connection_string_provider
    )
    try:
        return await pipeline.on_resource_ready(event)
    finally:
        if isinstance(reporter, TqdmProgressReporter):
            reporter.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.config)

    logging.basicConfig(
        level=(args.log_level or settings.monitoring.log_level).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        settings.validate_required()
        result = asyncio.run(run(settings))
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if result.success:
        if result.skipped:
            logger.info(f"Database {result.database_name} already populated, nothing restored")
        for warning in result.warnings:
            logger.warning(warning)
        logger.info(f"Finished in {result.execution_time_ms:.0f} ms")
        return 0

    logger.error(f"Restore of {result.database_name} failed: {result.error_message}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
