"""
Database Restore Configuration

Centralized configuration for the restore orchestration: warm-up, drop retry
bound, RESTORE timeout and the engine-side directories.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any
import logging
import posixpath

logger = logging.getLogger(__name__)

# SQL Server: "Cannot drop database because it is currently in use."
DATABASE_IN_USE_ERROR = 3702

MASTER_DATABASE = "master"


@dataclass
class RestoreConfig:
    """
    Configuration for restore orchestration.

    Timing Settings:
        warmup_seconds: Delay after the target is ready, before the first probe
        restore_timeout_seconds: Timeout applied to the RESTORE statement

    Retry Settings:
        drop_max_attempts: Total drop attempts while the database is in use
        drop_retry_delay_seconds: Fixed delay between drop attempts (no backoff, no jitter)
        lock_contention_error: Native error number treated as "database in use"

    Engine Settings:
        data_directory: Directory receiving restored data and log files
        backup_directory: Directory where the engine sees the cached backup
        owner_login: Login that becomes the database owner after restore

    Example:
        ```python
        config = RestoreConfig(warmup_seconds=10.0, owner_login="sa")
        orchestrator = RestoreOrchestrator(connection_manager, config=config)
        ```
    """

    warmup_seconds: float = 5.0
    restore_timeout_seconds: float = 300.0

    drop_max_attempts: int = 3
    drop_retry_delay_seconds: float = 2.0
    lock_contention_error: int = DATABASE_IN_USE_ERROR

    data_directory: str = "/var/opt/mssql/data"
    backup_directory: str = "/var/opt/mssql/backup"
    owner_login: str = "sa"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ValueError: If any configuration parameter is invalid
        """
        if self.warmup_seconds < 0:
            raise ValueError("warmup_seconds cannot be negative")
        if self.restore_timeout_seconds <= 0:
            raise ValueError("restore_timeout_seconds must be positive")
        if self.drop_max_attempts < 1:
            raise ValueError("drop_max_attempts must be at least 1")
        if self.drop_retry_delay_seconds < 0:
            raise ValueError("drop_retry_delay_seconds cannot be negative")
        if not self.data_directory:
            raise ValueError("data_directory must be set")
        if not self.backup_directory:
            raise ValueError("backup_directory must be set")
        if not self.owner_login:
            raise ValueError("owner_login must be set")
        if self.drop_max_attempts > 10:
            logger.warning(
                f"drop_max_attempts={self.drop_max_attempts} keeps the run blocked for up to "
                f"{self.drop_max_attempts * self.drop_retry_delay_seconds:.0f}s"
            )

    @classmethod
    def from_settings(cls, restore_settings) -> "RestoreConfig":
        """Build from a ``config.RestoreSettings`` instance."""
        return cls(
            warmup_seconds=restore_settings.warmup_seconds,
            restore_timeout_seconds=float(restore_settings.restore_timeout_seconds),
            drop_max_attempts=restore_settings.drop_max_attempts,
            drop_retry_delay_seconds=restore_settings.drop_retry_delay_seconds,
            data_directory=restore_settings.data_directory,
            backup_directory=restore_settings.backup_directory,
            owner_login=restore_settings.owner_login,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def data_file_path(self, physical_file_name: str) -> str:
        """Engine-side path of a restored file (the engine runs on Linux)."""
        return posixpath.join(self.data_directory, physical_file_name)

    def backup_file_path(self, backup_file_name: str) -> str:
        """Engine-side path of the cached backup file."""
        return posixpath.join(self.backup_directory, backup_file_name)
