"""
Restore Orchestrator

State machine that restores the target database from a backup file at most
once:

    PROBING -> [RECLAIMING] -> [DROPPING] -> RESTORING -> FINALIZING -> DONE
                    \\-> DONE (populated target, skipped)
    any step -> FAILED

A populated target is never overwritten. An empty target is dropped so the
restore can recreate it; the drop is retried only while the database is in
use. Fatal conditions end the run in FAILED instead of raising, and a later
run re-probes from scratch.
"""

import asyncio
import logging
import time
from typing import Optional

from connection_management import (
    ConnectionManager,
    DatabaseConnectionError,
    SqlServerConnection,
    SqlStatementError
)
from restore_ops_exceptions import RestoreOpsError
from ..config import MASTER_DATABASE, RestoreConfig
from ..exceptions import LockContention, RestoreCancelled, RestoreStatementFailed
from ..models.entities import (
    BackupManifestEntry,
    DatabaseState,
    RestoreResult,
    RestoreState,
    RestoreTarget
)
from ..utils.retry import SleepFunc, retry_on_lock_contention
from . import statements
from .probe import DatabaseProbe

logger = logging.getLogger(__name__)


class RestoreOrchestrator:
    """
    Sequences probe, drop, restore and finalize against one SQL Server.

    Statements run one at a time on a single ``master`` connection; the owner
    change runs on a second connection to the restored database.

    Example:
        ```python
        orchestrator = RestoreOrchestrator(ConnectionManager(target.endpoint))
        result = await orchestrator.run(target, "/var/opt/mssql/backup/app.bak")
        if not result.success:
            logger.error(result.error_message)
        ```
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        config: Optional[RestoreConfig] = None,
        probe: Optional[DatabaseProbe] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        """
        Initialize RestoreOrchestrator.

        Args:
            connection_manager: Opens connections to the target's server
            config: Restore configuration (uses defaults if None)
            probe: Database probe (a new one if None)
            sleep: Coroutine used for the drop retry delay
        """
        self._connections = connection_manager
        self._config = config or RestoreConfig()
        self._probe = probe or DatabaseProbe()
        self._sleep = sleep

    async def run(
        self,
        target: RestoreTarget,
        backup_file_path: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> RestoreResult:
        """
        Restore the target from ``backup_file_path`` unless it is populated.

        Args:
            target: Database and server to restore into
            backup_file_path: Engine-side path of the backup file
            cancel_event: When set, the run stops before the next step

        Returns:
            RestoreResult in DONE or FAILED
        """
        start_time = time.monotonic()
        database = target.database
        result = RestoreResult(database_name=database.name)

        logger.info(f"Starting database restore for {database}...")

        result.enter(RestoreState.PROBING)
        try:
            async with self._connections.connect(
                MASTER_DATABASE, query_timeout=self._config.restore_timeout_seconds
            ) as master:
                logger.info("Connected to SQL Server, checking if database exists...")

                probe = await self._probe.classify(target, master)
                result.probe_state = probe.state
                if probe.reclaim_attempted:
                    result.transitions.append(RestoreState.RECLAIMING)

                if probe.state == DatabaseState.PRESENT_POPULATED:
                    logger.info(
                        f"Database {database} already has {probe.table_count} tables, skipping restore."
                    )
                    result.skipped = True
                    result.enter(RestoreState.DONE)
                    return result

                if probe.state == DatabaseState.PRESENT_EMPTY:
                    logger.info(f"Database {database} exists but is empty, will restore from backup.")
                    _raise_if_cancelled(cancel_event, database.name)
                    result.enter(RestoreState.DROPPING)
                    await self._drop(target, master, result)

                _raise_if_cancelled(cancel_event, database.name)
                result.enter(RestoreState.RESTORING)
                result.files_restored = await self._restore(target, master, backup_file_path)

                result.enter(RestoreState.FINALIZING)
                await self._finalize(target, master, result)

            result.enter(RestoreState.DONE)
            logger.info(f"Database {database} fully initialized!")

        except LockContention as e:
            logger.error(
                f"Database {database} still in use after {result.drop_attempts} drop attempts: {e}"
            )
            result.error_message = str(e)
            result.enter(RestoreState.FAILED)
        except RestoreOpsError as e:
            logger.error(f"Error restoring database {database}: {e}")
            result.error_message = str(e)
            result.enter(RestoreState.FAILED)
        finally:
            result.execution_time_ms = (time.monotonic() - start_time) * 1000

        return result

    async def _drop(self, target: RestoreTarget, master: SqlServerConnection, result: RestoreResult) -> None:
        """Drop the empty target, retrying only on "database in use"."""
        database = target.database

        async def _drop_once() -> None:
            result.drop_attempts += 1
            try:
                await master.execute_non_query(statements.drop_database(database))
            except SqlStatementError as e:
                if e.native_error == self._config.lock_contention_error:
                    raise LockContention(
                        "Database is in use by another session",
                        database_name=database.name,
                        native_error=e.native_error,
                        context={"attempt": result.drop_attempts}
                    ) from e
                raise RestoreStatementFailed(
                    f"Could not drop database: {e.message}",
                    database_name=database.name,
                    native_error=e.native_error,
                    step="drop"
                ) from e

        await retry_on_lock_contention(
            _drop_once,
            max_attempts=self._config.drop_max_attempts,
            delay_seconds=self._config.drop_retry_delay_seconds,
            operation_name=f"drop of {database}",
            sleep=self._sleep
        )
        logger.info(f"Dropped empty database {database}")

    async def _restore(self, target: RestoreTarget, master: SqlServerConnection, backup_file_path: str) -> int:
        """Read the backup's file list and run a single RESTORE ... WITH MOVE."""
        database = target.database
        logger.info("Restoring database from backup...")

        try:
            rows = await master.fetch_all(statements.restore_filelist(backup_file_path))
        except SqlStatementError as e:
            raise RestoreStatementFailed(
                f"Could not read file list from backup {backup_file_path}: {e.message}",
                database_name=database.name,
                native_error=e.native_error,
                step="filelist"
            ) from e

        try:
            manifest = [BackupManifestEntry.from_row(row) for row in rows]
        except (ValueError, IndexError, TypeError) as e:
            # pydantic's ValidationError is a ValueError
            raise RestoreStatementFailed(
                f"Unexpected file list row in backup {backup_file_path}: {e}",
                database_name=database.name,
                step="filelist"
            ) from e
        logger.info(f"Found {len(manifest)} files in backup")
        if not manifest:
            raise RestoreStatementFailed(
                f"Backup {backup_file_path} lists no files",
                database_name=database.name,
                step="filelist"
            )

        moves = [
            (entry.logical_name, self._config.data_file_path(entry.physical_file_name(database, index)))
            for index, entry in enumerate(manifest)
        ]
        restore_sql = statements.restore_database(database, backup_file_path, moves)

        logger.info("Executing RESTORE command...")
        try:
            await master.execute_non_query(
                restore_sql, timeout=self._config.restore_timeout_seconds
            )
        except SqlStatementError as e:
            raise RestoreStatementFailed(
                f"RESTORE DATABASE failed: {e.message}",
                database_name=database.name,
                native_error=e.native_error,
                step="restore"
            ) from e

        logger.info(f"Database {database} restored successfully!")
        return len(manifest)

    async def _finalize(self, target: RestoreTarget, master: SqlServerConnection, result: RestoreResult) -> None:
        """
        Mark the database TRUSTWORTHY and hand ownership to the owner login.

        Both are best-effort: failures become warnings on the result and the
        run still reaches DONE.
        """
        database = target.database

        logger.info(f"Setting TRUSTWORTHY ON for database {database}...")
        try:
            await master.execute_non_query(statements.set_trustworthy(database))
        except SqlStatementError as e:
            warning = f"Could not set TRUSTWORTHY ON for {database}: {e}"
            logger.warning(warning)
            result.warnings.append(warning)

        owner = self._config.owner_login
        try:
            async with self._connections.connect(database.name) as owner_connection:
                await owner_connection.execute_non_query(statements.change_owner(owner))
        except (SqlStatementError, DatabaseConnectionError) as e:
            warning = f"Could not change owner of {database} to {owner}: {e}"
            logger.warning(warning)
            result.warnings.append(warning)
        else:
            logger.info(f"Database {database} owner set to {owner}")


def _raise_if_cancelled(cancel_event: Optional[asyncio.Event], database_name: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RestoreCancelled("Restore cancelled", database_name=database_name)
