"""
Connection Management Module

This module provides SQL Server connection management for the restore flow.

Key capabilities:
- Parsing of ADO.NET-style connection strings into re-targetable endpoints
- Async statement execution over the synchronous pymssql driver on a
  dedicated thread pool
- Operation-level timeouts for long statements such as RESTORE
- Translation of driver errors into exceptions that keep the engine's
  native error number
"""

from .connection_manager import ConnectionManager, SqlServerConnection
from .connection_string import ConnectionEndpoint
from .connection_exceptions import (
    DatabaseConnectionError,
    SqlStatementError,
    native_error_number
)

__all__ = [
    'ConnectionManager',
    'SqlServerConnection',
    'ConnectionEndpoint',
    'DatabaseConnectionError',
    'SqlStatementError',
    'native_error_number',
]
