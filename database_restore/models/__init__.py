"""
Database Restore Models

Exports all data models used by the probe, orchestrator and pipeline.
"""

from .entities import (
    DatabaseState,
    RestoreState,
    StreamKind,
    DatabaseIdentifier,
    RestoreTarget,
    ProbeResult,
    BackupManifestEntry,
    RestoreResult,
    ResourceReadyEvent
)

__all__ = [
    # Enums
    'DatabaseState',
    'RestoreState',
    'StreamKind',

    # Entities
    'DatabaseIdentifier',
    'RestoreTarget',
    'ProbeResult',
    'BackupManifestEntry',
    'RestoreResult',
    'ResourceReadyEvent'
]
