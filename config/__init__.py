"""
Configuration Module

This module provides centralized configuration management for restore operations:
- Azure File Share download settings
- Target database identification
- Restore orchestration tuning (warm-up, retries, timeouts, directories)
- Logging and progress reporting

Settings are loaded from environment variables or a YAML file using Pydantic.
"""

from .settings import (
    RestoreOpsSettings,
    StorageSettings,
    DatabaseSettings,
    RestoreSettings,
    MonitoringSettings,
    load_settings
)

__all__ = [
    'RestoreOpsSettings',
    'StorageSettings',
    'DatabaseSettings',
    'RestoreSettings',
    'MonitoringSettings',
    'load_settings'
]
