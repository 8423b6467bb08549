"""
Pydantic Settings for Restore Operations

This module provides strongly-typed configuration settings using Pydantic,
with support for environment variables and YAML configuration files.
"""

from typing import Optional, List, Union
from pathlib import Path
import os

from pydantic import Field
from pydantic_settings import BaseSettings
from pydantic_yaml import to_yaml_str

from restore_ops_exceptions import ConfigurationError


class StorageSettings(BaseSettings):
    """
    Azure File Share settings for locating and downloading the backup artifact.

    These settings control where the backup comes from and where it is cached:
    - The full file URL on the share (account, share and path are parsed from it)
    - The storage account key used for SharedKey request signing
    - Streaming behavior for the download
    """
    file_url: str = Field("", description="Full URL of the backup file on the Azure File Share")
    storage_account_key: Optional[str] = Field(None, repr=False,
                                               description="Base64 storage account key (only needed when the cache is empty)")
    protocol_version: str = Field("2021-08-06",
                                  description="Value sent in the x-ms-version header")
    chunk_size: int = Field(8192, description="Bytes read per chunk while streaming the download")
    request_timeout: float = Field(300.0, description="HTTP timeout in seconds for the download request")
    local_cache_dir: str = Field("./sqldata",
                                 description="Local directory holding the cached backup file (bind-mounted into the engine)")

    class Config:
        env_prefix = "AZURE_FILE_SHARE_"
        case_sensitive = False


class DatabaseSettings(BaseSettings):
    """
    Target database settings.

    These settings identify the database to restore and the backup file name
    as seen from inside the database engine.
    """
    database_name: str = Field("", description="Name of the database to restore")
    backup_file_name: str = Field("", description="File name of the backup inside the engine's backup directory")
    connection_string: Optional[str] = Field(None, repr=False,
                                             description="Connection string of the target database (Server=...;Database=...)")
    connect_timeout: int = Field(30, description="Login timeout in seconds")

    class Config:
        env_prefix = ""
        case_sensitive = False


class RestoreSettings(BaseSettings):
    """
    Restore orchestration settings.

    These settings tune the restore sequence:
    - Warm-up delay before the first probe
    - Bounded retry when the database is in use during drop
    - Timeout for the RESTORE statement
    - Engine-side directories and the owning login
    """
    warmup_seconds: float = Field(5.0, description="Delay after the target is ready and before the first probe")
    drop_max_attempts: int = Field(3, description="Total drop attempts when the database is in use")
    drop_retry_delay_seconds: float = Field(2.0, description="Fixed delay between drop attempts")
    restore_timeout_seconds: int = Field(300, description="Timeout for the RESTORE DATABASE statement")
    data_directory: str = Field("/var/opt/mssql/data",
                                description="Engine directory receiving the restored data and log files")
    backup_directory: str = Field("/var/opt/mssql/backup",
                                  description="Engine directory where the cached backup is visible")
    owner_login: str = Field("sa", description="Login that becomes the owner of the restored database")

    class Config:
        env_prefix = "RESTORE_"
        case_sensitive = False


class MonitoringSettings(BaseSettings):
    """
    Logging and progress reporting settings.
    """
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    show_progress_bar: bool = Field(False, description="Render a tqdm bar for the download instead of log lines")

    class Config:
        env_prefix = "RESTORE_OPS_"
        case_sensitive = False


class RestoreOpsSettings(BaseSettings):
    """
    Main settings class that consolidates all configuration categories.

    Usage:
        # Load from environment variables and defaults
        settings = RestoreOpsSettings()

        # Load from YAML file
        settings = RestoreOpsSettings.from_yaml('restore.yaml')

        # Access nested settings
        url = settings.storage.file_url
        name = settings.database.database_name
    """
    storage: StorageSettings = Field(default_factory=StorageSettings,
                                     description="Azure File Share download settings")
    database: DatabaseSettings = Field(default_factory=DatabaseSettings,
                                       description="Target database settings")
    restore: RestoreSettings = Field(default_factory=RestoreSettings,
                                     description="Restore orchestration settings")
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings,
                                           description="Logging and progress settings")

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_nested_delimiter = "__"

    @classmethod
    def from_yaml(cls, yaml_file: Union[str, Path]) -> "RestoreOpsSettings":
        """Load settings from YAML file"""
        import yaml
        with open(yaml_file, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self) -> str:
        """Render settings as YAML, without secrets."""
        redacted = self.model_copy(deep=True)
        redacted.storage.storage_account_key = None
        redacted.database.connection_string = None
        return to_yaml_str(redacted)

    def validate_required(self) -> None:
        """
        Check that the values needed for a restore run are present.

        Only presence is checked; formats are validated where the values
        are used.

        Raises:
            ConfigurationError: If any required value is missing
        """
        missing: List[str] = []
        if not self.storage.file_url:
            missing.append("storage.file_url")
        if not self.database.database_name:
            missing.append("database.database_name")
        if not self.database.backup_file_name:
            missing.append("database.backup_file_name")
        if missing:
            raise ConfigurationError(
                "Required settings are missing",
                context={"missing": missing}
            )


def load_settings(config_path: Optional[str] = None) -> RestoreOpsSettings:
    """
    Load settings from file and/or environment variables.

    Args:
        config_path: Path to YAML configuration file. If None or file doesn't exist,
                    falls back to environment variables and default values.

    Returns:
        RestoreOpsSettings object with loaded configuration

    Example:
        # Load from specific config file
        settings = load_settings("/path/to/restore.yaml")

        # Load from environment variables and defaults
        settings = load_settings()
    """
    if config_path and os.path.exists(config_path):
        return RestoreOpsSettings.from_yaml(config_path)
    return RestoreOpsSettings()
