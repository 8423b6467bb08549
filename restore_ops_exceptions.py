"""
Restore Operations Exceptions

This module defines the root exceptions for the MSSQL_Restore_Ops package
to provide clear error handling and reporting across the download,
connection and restore layers.
"""

from typing import Any, Dict, Optional


class RestoreOpsError(Exception):
    """
    Base exception for all MSSQL_Restore_Ops errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information as key-value pairs
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


class ConfigurationError(RestoreOpsError):
    """Raised when configuration is invalid or missing"""
    pass


class OperationTimeoutError(RestoreOpsError):
    """Raised when an operation times out"""
    pass
