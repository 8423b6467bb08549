"""
Backup Download Module

Fetches SQL Server backup artifacts from an Azure File Share into a local
cache, authenticating each request with a SharedKey signature computed here
rather than by an SDK.

Features:
- SharedKey signing for Azure Files read requests (pure, testable)
- Cache-first fetch: an existing local file is returned with no network call
- Streaming download with whole-percent progress observations
- Write-to-temporary-path and atomic rename, so partial files are never trusted
- Cancellation between chunks

Typical usage:

    from backup_download import BackupFetcher, BackupSource, DownloadConfig

    source = BackupSource.from_url(file_url, signing_key=account_key)
    fetcher = BackupFetcher(DownloadConfig(local_cache_dir="./sqldata"))
    entry = await fetcher.ensure_local(source)
"""

from .config import DownloadConfig, AZURE_FILES_PROTOCOL_VERSION
from .core import BackupFetcher, RequestSigner, build_string_to_sign, format_rfc1123, sign
from .models.entities import BackupSource, LocalCacheEntry, DownloadProgress
from .exceptions import (
    BackupDownloadError,
    InvalidCredential,
    MissingCredential,
    DownloadFailed,
    DownloadCancelled
)
from .utils import (
    DownloadProgressTracker,
    LoggingProgressReporter,
    TqdmProgressReporter
)

__all__ = [
    # Core
    'BackupFetcher',
    'RequestSigner',
    'build_string_to_sign',
    'format_rfc1123',
    'sign',

    # Configuration
    'DownloadConfig',
    'AZURE_FILES_PROTOCOL_VERSION',

    # Entities
    'BackupSource',
    'LocalCacheEntry',
    'DownloadProgress',

    # Exceptions
    'BackupDownloadError',
    'InvalidCredential',
    'MissingCredential',
    'DownloadFailed',
    'DownloadCancelled',

    # Utilities
    'DownloadProgressTracker',
    'LoggingProgressReporter',
    'TqdmProgressReporter'
]
