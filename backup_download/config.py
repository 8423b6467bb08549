"""
Backup Download Configuration

Tunable parameters for fetching backup artifacts from an Azure File Share.
"""

from dataclasses import dataclass
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

AZURE_FILES_PROTOCOL_VERSION = "2021-08-06"


@dataclass
class DownloadConfig:
    """
    Configuration for backup downloads.

    Attributes:
        protocol_version: Value of the x-ms-version header
        chunk_size: Bytes read and written per streaming iteration
        request_timeout: HTTP timeout in seconds (connect, read and write)
        local_cache_dir: Directory holding cached backup files
        partial_suffix: Suffix of the temporary file written during a download

    Example:
        ```python
        config = DownloadConfig(chunk_size=1024 * 1024, local_cache_dir="/mnt/sqldata")
        fetcher = BackupFetcher(config=config)
        ```
    """

    protocol_version: str = AZURE_FILES_PROTOCOL_VERSION
    chunk_size: int = 8192
    request_timeout: float = 300.0
    local_cache_dir: str = "./sqldata"
    partial_suffix: str = ".partial"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ValueError: If any configuration parameter is invalid
        """
        if not self.protocol_version:
            raise ValueError("protocol_version must be set")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.chunk_size > 64 * 1024 * 1024:
            logger.warning(f"Large chunk size ({self.chunk_size} bytes) may cause memory issues")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if not self.local_cache_dir:
            raise ValueError("local_cache_dir must be set")
        if not self.partial_suffix:
            raise ValueError("partial_suffix must be set")

    @classmethod
    def from_settings(cls, storage_settings) -> "DownloadConfig":
        """Build from a ``config.StorageSettings`` instance."""
        return cls(
            protocol_version=storage_settings.protocol_version,
            chunk_size=storage_settings.chunk_size,
            request_timeout=storage_settings.request_timeout,
            local_cache_dir=storage_settings.local_cache_dir,
        )

    def cache_path_for(self, file_name: str) -> Path:
        """Deterministic cache location for a backup file name."""
        return Path(self.local_cache_dir) / file_name
