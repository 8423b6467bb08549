"""
Database Restore Exceptions

Exception hierarchy for probing and restoring the target database. The
orchestrator converts every one of these into a FAILED result; only
LockContention is ever retried.
"""

from typing import Optional, Dict, Any

from restore_ops_exceptions import RestoreOpsError


class DatabaseRestoreError(RestoreOpsError):
    """
    Base exception for restore orchestration.

    Attributes:
        message: Human-readable error message
        database_name: Target database (if applicable)
        native_error: SQL Server error number behind the failure (if any)
        context: Additional context information as key-value pairs
    """

    def __init__(
        self,
        message: str,
        database_name: Optional[str] = None,
        native_error: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context)
        self.database_name = database_name
        self.native_error = native_error

    def __str__(self) -> str:
        parts = [self.message]
        if self.database_name:
            parts.append(f"Database: {self.database_name}")
        if self.native_error is not None:
            parts.append(f"Error: {self.native_error}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


class InvalidIdentifierError(DatabaseRestoreError):
    """
    A database name contains characters outside the allowed set.

    Names are interpolated into statement text as bracketed identifiers, so
    they are validated once, when the identifier is built.
    """
    pass


class LockContention(DatabaseRestoreError):
    """
    The database is in use by another session (SQL Server error 3702).

    Retryable: the drop step tries again after a fixed delay.
    """
    pass


class RestoreStatementFailed(DatabaseRestoreError):
    """
    A probe, drop, restore or finalize statement failed with a non-retryable error.

    Additional Attributes:
        step: Name of the step that failed (e.g. "drop", "restore")
    """

    def __init__(
        self,
        message: str,
        database_name: Optional[str] = None,
        native_error: Optional[int] = None,
        step: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, database_name, native_error, context)
        self.step = step


class ConnectionStringUnavailable(DatabaseRestoreError):
    """The target's connection string could not be materialized."""
    pass


class RestoreCancelled(DatabaseRestoreError):
    """The run was cancelled through its cancellation event."""
    pass
