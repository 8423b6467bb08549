"""
Connection Management Exceptions

This module defines specialized exceptions for SQL Server connection management,
providing detailed error reporting for connection and statement failures.

Statement failures keep the engine's native error number so callers can
react to specific conditions (for example 3702, database in use) without
parsing message text.
"""

from typing import Any, Dict, Optional

from restore_ops_exceptions import RestoreOpsError


class DatabaseConnectionError(RestoreOpsError):
    """
    Raised when a connection to SQL Server cannot be opened.

    Covers invalid connection strings, unreachable servers and failed logins.
    """
    pass


class SqlStatementError(RestoreOpsError):
    """
    Raised when SQL Server rejects a statement.

    Attributes:
        native_error: Engine error number (e.g. 3702), if the driver reported one
        database: Catalog the statement was issued against
        statement: Statement text, for diagnostics
    """

    def __init__(
        self,
        message: str,
        native_error: Optional[int] = None,
        database: Optional[str] = None,
        statement: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context)
        self.native_error = native_error
        self.database = database
        self.statement = statement

    def __str__(self) -> str:
        parts = [self.message]
        if self.native_error is not None:
            parts.append(f"Error: {self.native_error}")
        if self.database:
            parts.append(f"Database: {self.database}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


def native_error_number(exc: BaseException) -> Optional[int]:
    """
    Extract the SQL Server error number from a pymssql exception.

    pymssql raises DatabaseError subclasses whose first argument is the
    engine error number and whose second is the message as bytes.
    """
    if exc.args and isinstance(exc.args[0], int):
        return exc.args[0]
    return None


def driver_error_message(exc: BaseException) -> str:
    """Return the driver message of a pymssql exception as text."""
    if len(exc.args) >= 2:
        message = exc.args[1]
        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace").strip()
        return str(message).strip()
    return str(exc)
