"""
Restore Pipeline

Glue between the environment's "target ready" notification and the two
halves of the system: the backup is materialized in the local cache first,
then the target database is restored from it.

The pipeline never raises for an operational failure. Every fatal condition
is logged and returned as a FAILED RestoreResult; only task cancellation
propagates.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from backup_download import (
    BackupDownloadError,
    BackupFetcher,
    BackupSource,
    DownloadConfig,
    LocalCacheEntry
)
from backup_download.core.fetcher import ProgressCallback
from connection_management import ConnectionEndpoint, ConnectionManager
from restore_ops_exceptions import RestoreOpsError
from ..config import RestoreConfig
from ..exceptions import ConnectionStringUnavailable, RestoreCancelled
from ..models.entities import (
    DatabaseIdentifier,
    ResourceReadyEvent,
    RestoreResult,
    RestoreTarget
)
from ..utils.retry import SleepFunc
from .orchestrator import RestoreOrchestrator

logger = logging.getLogger(__name__)

ConnectionManagerFactory = Callable[[ConnectionEndpoint], ConnectionManager]


class RestorePipeline:
    """
    Downloads the backup and restores the target when it becomes ready.

    Example:
        ```python
        settings = load_settings("restore.yaml")
        pipeline = RestorePipeline.from_settings(settings)

        event = ResourceReadyEvent(
            database_name="app",
            connection_string_provider=resolve_connection_string
        )
        result = await pipeline.on_resource_ready(event)
        ```
    """

    def __init__(
        self,
        source: BackupSource,
        backup_file_name: Optional[str] = None,
        download_config: Optional[DownloadConfig] = None,
        restore_config: Optional[RestoreConfig] = None,
        fetcher: Optional[BackupFetcher] = None,
        connection_manager_factory: Optional[ConnectionManagerFactory] = None,
        sleep: SleepFunc = asyncio.sleep,
        progress_reporter: Optional[ProgressCallback] = None,
        login_timeout: int = 30
    ):
        """
        Initialize RestorePipeline.

        Args:
            source: Remote backup file and its signing key
            backup_file_name: File name of the backup inside the engine's backup
                directory (defaults to the source file name)
            download_config: Download configuration (uses defaults if None)
            restore_config: Restore configuration (uses defaults if None)
            fetcher: Backup fetcher (built from download_config if None)
            connection_manager_factory: Builds a ConnectionManager for the target
            sleep: Coroutine used for the warm-up and drop retry delays
            progress_reporter: Receives download progress observations
            login_timeout: SQL Server login timeout in seconds
        """
        self.source = source
        self.backup_file_name = backup_file_name or source.file_name
        self._download_config = download_config or DownloadConfig()
        self._restore_config = restore_config or RestoreConfig()
        self._fetcher = fetcher or BackupFetcher(self._download_config)
        self._connection_manager_factory = connection_manager_factory or self._default_manager
        self._sleep = sleep
        self._progress_reporter = progress_reporter
        self._login_timeout = login_timeout

    @classmethod
    def from_settings(cls, settings, progress_reporter: Optional[ProgressCallback] = None) -> "RestorePipeline":
        """
        Build a pipeline from ``config.RestoreOpsSettings``.

        Raises:
            ConfigurationError: If the backup file URL cannot be parsed
        """
        source = BackupSource.from_url(
            settings.storage.file_url,
            signing_key=settings.storage.storage_account_key
        )
        return cls(
            source,
            backup_file_name=settings.database.backup_file_name or None,
            download_config=DownloadConfig.from_settings(settings.storage),
            restore_config=RestoreConfig.from_settings(settings.restore),
            progress_reporter=progress_reporter,
            login_timeout=settings.database.connect_timeout
        )

    def _default_manager(self, endpoint: ConnectionEndpoint) -> ConnectionManager:
        return ConnectionManager(endpoint, login_timeout=self._login_timeout)

    async def on_resource_ready(self, event: ResourceReadyEvent) -> RestoreResult:
        """
        Handle the "target ready" notification.

        Args:
            event: Database name, connection string provider and cancellation

        Returns:
            RestoreResult in DONE or FAILED
        """
        start_time = time.monotonic()
        database_name = event.database_name

        try:
            entry = await self._download(event)
            if not entry.exists:
                return self._failed(
                    database_name,
                    f"Backup file {self.source.file_name} is not available locally: {entry.error_message}",
                    start_time
                )

            connection_string = await self._resolve_connection_string(event)
            endpoint = ConnectionEndpoint.parse(connection_string)
            database = DatabaseIdentifier(endpoint.database or event.database_name)
            database_name = database.name
            target = RestoreTarget(database=database, endpoint=endpoint)

            logger.info(f"Waiting {self._restore_config.warmup_seconds:.0f}s for SQL Server to be ready...")
            await self._sleep(self._restore_config.warmup_seconds)
            if event.cancel_event is not None and event.cancel_event.is_set():
                raise RestoreCancelled("Restore cancelled during warm-up", database_name=database_name)

            manager = self._connection_manager_factory(endpoint)
            try:
                orchestrator = RestoreOrchestrator(
                    manager, config=self._restore_config, sleep=self._sleep
                )
                return await orchestrator.run(
                    target,
                    self._restore_config.backup_file_path(self.backup_file_name),
                    cancel_event=event.cancel_event
                )
            finally:
                manager.close()

        except asyncio.CancelledError:
            logger.warning(f"Restore of {database_name} cancelled")
            raise
        except RestoreOpsError as e:
            logger.error(f"Error restoring database {database_name}: {e}")
            return self._failed(database_name, str(e), start_time)
        except Exception as e:
            logger.exception(f"Unexpected error restoring database {database_name}")
            return self._failed(database_name, f"Unexpected error: {e}", start_time)

    async def _download(self, event: ResourceReadyEvent) -> LocalCacheEntry:
        try:
            return await self._fetcher.ensure_local(
                self.source,
                on_progress=self._progress_reporter,
                cancel_event=event.cancel_event
            )
        except BackupDownloadError as e:
            logger.error(f"Could not materialize backup {self.source.file_name}: {e}")
            return LocalCacheEntry.failed(self._fetcher.cache_path_for(self.source), e.message)

    async def _resolve_connection_string(self, event: ResourceReadyEvent) -> str:
        try:
            connection_string = await event.connection_string_provider()
        except Exception as e:
            raise ConnectionStringUnavailable(
                f"Could not resolve connection string: {e}",
                database_name=event.database_name
            ) from e
        if not connection_string:
            raise ConnectionStringUnavailable(
                "Connection string is not available",
                database_name=event.database_name
            )
        return connection_string

    @staticmethod
    def _failed(database_name: str, error_message: str, start_time: float) -> RestoreResult:
        result = RestoreResult.failed(database_name, error_message)
        result.execution_time_ms = (time.monotonic() - start_time) * 1000
        return result
