"""
Backup Download Models

Exports the data models used by the signer and fetcher.
"""

from .entities import (
    BackupSource,
    LocalCacheEntry,
    DownloadProgress
)

__all__ = [
    'BackupSource',
    'LocalCacheEntry',
    'DownloadProgress'
]
