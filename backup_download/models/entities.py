"""
Backup Download Entities

Defines data models for the remote backup source, the local cache entry it is
materialized into, and the progress observations emitted while streaming.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field

from restore_ops_exceptions import ConfigurationError


class BackupSource(BaseModel):
    """
    Location of a backup file on an Azure File Share.

    All fields except the signing key are derived from the file URL:
    ``https://<account>.file.core.windows.net/<share>/<path>``.

    Attributes:
        source_url: Full URL of the file
        account_name: Storage account (first label of the host)
        share_name: File share (first path segment)
        relative_path: Path of the file inside the share
        signing_key: Base64 storage account key, only needed to download

    Example:
        ```python
        source = BackupSource.from_url(
            "https://acct.file.core.windows.net/backups/prod/app.bak",
            signing_key=settings.storage.storage_account_key
        )
        source.share_name    # "backups"
        source.relative_path # "prod/app.bak"
        ```
    """
    model_config = ConfigDict(frozen=True)

    source_url: str = Field(..., description="Full URL of the backup file")
    account_name: str = Field(..., min_length=1, description="Storage account name")
    share_name: str = Field(..., min_length=1, description="File share name")
    relative_path: str = Field(..., min_length=1, description="Path of the file inside the share")
    signing_key: Optional[str] = Field(default=None, repr=False, description="Base64 storage account key")

    @classmethod
    def from_url(cls, source_url: str, signing_key: Optional[str] = None) -> "BackupSource":
        """
        Parse a file URL into a BackupSource.

        Raises:
            ConfigurationError: If the URL has no host, share or file path
        """
        parsed = urlparse(source_url or "")
        host = parsed.hostname
        if parsed.scheme not in ("http", "https") or not host:
            raise ConfigurationError(
                "Backup source URL must be an absolute http(s) URL",
                context={"source_url": source_url}
            )

        segments = [unquote(s) for s in parsed.path.split("/") if s]
        if len(segments) < 2:
            raise ConfigurationError(
                "Backup source URL must contain a share name and a file path",
                context={"source_url": source_url}
            )

        return cls(
            source_url=source_url,
            account_name=host.split(".")[0],
            share_name=segments[0],
            relative_path="/".join(segments[1:]),
            signing_key=signing_key or None,
        )

    @property
    def file_name(self) -> str:
        """Last path segment, used to name the local cache file."""
        return self.relative_path.rsplit("/", 1)[-1]

    @property
    def canonical_resource(self) -> str:
        """Canonicalized resource used in the SharedKey string-to-sign."""
        return f"/{self.account_name}/{self.share_name}/{self.relative_path}"

    @property
    def has_signing_key(self) -> bool:
        return bool(self.signing_key)


class LocalCacheEntry(BaseModel):
    """
    A backup file materialized on the local filesystem.

    An entry with ``exists=True`` is trusted as complete: no checksum is
    verified. Downloads are written to a temporary path and renamed only on
    success, so a file at ``local_path`` is never a partial transfer.

    Attributes:
        local_path: Cache file location
        exists: Whether the file is present
        size_bytes: File size when present
        downloaded: True when this call performed the download
        error_message: Reason the file is absent after a failed download
    """
    local_path: Path = Field(..., description="Cache file location")
    exists: bool = Field(..., description="Whether the cache file is present")
    size_bytes: Optional[int] = Field(default=None, ge=0, description="File size in bytes")
    downloaded: bool = Field(default=False, description="Whether this call downloaded the file")
    error_message: Optional[str] = Field(default=None, description="Failure reason when absent")

    @classmethod
    def from_path(cls, local_path: Path, downloaded: bool = False) -> "LocalCacheEntry":
        """Build an entry describing an existing file."""
        return cls(
            local_path=local_path,
            exists=True,
            size_bytes=local_path.stat().st_size,
            downloaded=downloaded,
        )

    @classmethod
    def failed(cls, local_path: Path, error_message: str) -> "LocalCacheEntry":
        """Build an entry for a download that did not produce a file."""
        return cls(local_path=local_path, exists=False, error_message=error_message)

    @property
    def size_mb(self) -> float:
        return (self.size_bytes or 0) / (1024.0 * 1024.0)


@dataclass
class DownloadProgress:
    """
    One progress observation for a streaming download.

    Attributes:
        bytes_transferred: Bytes written so far
        total_bytes: Declared Content-Length, None when unknown
        percentage: Whole percent complete, None when the total is unknown
    """
    bytes_transferred: int
    total_bytes: Optional[int] = None
    percentage: Optional[int] = None

    @property
    def transferred_mb(self) -> float:
        return self.bytes_transferred / (1024.0 * 1024.0)

    @property
    def total_mb(self) -> Optional[float]:
        if self.total_bytes is None:
            return None
        return self.total_bytes / (1024.0 * 1024.0)
