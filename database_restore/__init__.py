"""
Database Restore Module

Restores a SQL Server database from a cached backup file at most once, when
the environment reports the target as ready.

Features:
- Probe that tells an absent, empty or populated target apart
- Populated targets are never overwritten
- Empty targets are dropped with a bounded, fixed-delay retry while in use
- Single RESTORE ... WITH MOVE relocating every file listed in the backup
- Best-effort TRUSTWORTHY and owner change after the restore
- Every fatal condition reported as a FAILED result instead of an exception

Typical usage:

    from config import load_settings
    from database_restore import RestorePipeline, ResourceReadyEvent

    settings = load_settings("restore.yaml")
    pipeline = RestorePipeline.from_settings(settings)

    result = await pipeline.on_resource_ready(
        ResourceReadyEvent(
            database_name="app",
            connection_string_provider=resolve_connection_string
        )
    )
    if not result.success:
        logger.error(result.error_message)
"""

from .config import RestoreConfig, DATABASE_IN_USE_ERROR, MASTER_DATABASE
from .core import DatabaseProbe, RestoreOrchestrator, RestorePipeline
from .models.entities import (
    DatabaseState,
    RestoreState,
    StreamKind,
    DatabaseIdentifier,
    RestoreTarget,
    ProbeResult,
    BackupManifestEntry,
    RestoreResult,
    ResourceReadyEvent
)
from .exceptions import (
    DatabaseRestoreError,
    InvalidIdentifierError,
    LockContention,
    RestoreStatementFailed,
    ConnectionStringUnavailable,
    RestoreCancelled
)
from .utils import retry_on_lock_contention

__all__ = [
    # Core
    'DatabaseProbe',
    'RestoreOrchestrator',
    'RestorePipeline',

    # Configuration
    'RestoreConfig',
    'DATABASE_IN_USE_ERROR',
    'MASTER_DATABASE',

    # Entities
    'DatabaseState',
    'RestoreState',
    'StreamKind',
    'DatabaseIdentifier',
    'RestoreTarget',
    'ProbeResult',
    'BackupManifestEntry',
    'RestoreResult',
    'ResourceReadyEvent',

    # Exceptions
    'DatabaseRestoreError',
    'InvalidIdentifierError',
    'LockContention',
    'RestoreStatementFailed',
    'ConnectionStringUnavailable',
    'RestoreCancelled',

    # Utilities
    'retry_on_lock_contention'
]
