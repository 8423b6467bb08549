"""
Backup Download Exceptions

Defines the exception hierarchy for signing and downloading backup artifacts
from an Azure File Share, so callers can tell a configuration problem (no or
bad key) apart from a transfer failure.
"""

from typing import Optional, Dict, Any

from restore_ops_exceptions import RestoreOpsError


class BackupDownloadError(RestoreOpsError):
    """
    Base exception for all backup download operations.

    Attributes:
        message: Human-readable error message
        source_url: URL of the remote backup file (if applicable)
        local_path: Local cache path involved (if applicable)
        context: Additional context information as key-value pairs

    Example:
        ```python
        try:
            entry = await fetcher.ensure_local(source, dest_path)
        except BackupDownloadError as e:
            logger.error(f"Download error for {e.source_url}: {e.message}")
        ```
    """

    def __init__(
        self,
        message: str,
        source_url: Optional[str] = None,
        local_path: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context)
        self.source_url = source_url
        self.local_path = local_path

    def __str__(self) -> str:
        parts = [self.message]
        if self.source_url:
            parts.append(f"Source: {self.source_url}")
        if self.local_path:
            parts.append(f"Local path: {self.local_path}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


class InvalidCredential(BackupDownloadError):
    """
    The signing key is absent or is not valid base64.

    Raised by the request signer before anything is sent.
    """
    pass


class MissingCredential(BackupDownloadError):
    """
    A download is required but no storage account key is configured.

    Raised before any network call; the local cache was empty so the key
    cannot be skipped.
    """
    pass


class DownloadFailed(BackupDownloadError):
    """
    The transfer failed while streaming the response body.

    Additional Attributes:
        status_code: HTTP status code, when the failure was a response status
        bytes_transferred: Bytes written before the failure
    """

    def __init__(
        self,
        message: str,
        source_url: Optional[str] = None,
        local_path: Optional[str] = None,
        status_code: Optional[int] = None,
        bytes_transferred: int = 0,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, source_url, local_path, context)
        self.status_code = status_code
        self.bytes_transferred = bytes_transferred


class DownloadCancelled(DownloadFailed):
    """The download was aborted through its cancellation event."""
    pass
