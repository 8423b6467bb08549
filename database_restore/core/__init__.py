"""
Database Restore Core

Statement builders, the database probe, the restore state machine and the
pipeline that ties the download to the restore.
"""

from .statements import (
    DATABASE_EXISTS,
    quote_literal,
    reclaim_sessions,
    count_user_tables,
    drop_database,
    restore_filelist,
    restore_database,
    set_trustworthy,
    change_owner
)
from .probe import DatabaseProbe
from .orchestrator import RestoreOrchestrator
from .pipeline import RestorePipeline

__all__ = [
    # Statements
    'DATABASE_EXISTS',
    'quote_literal',
    'reclaim_sessions',
    'count_user_tables',
    'drop_database',
    'restore_filelist',
    'restore_database',
    'set_trustworthy',
    'change_owner',

    # Orchestration
    'DatabaseProbe',
    'RestoreOrchestrator',
    'RestorePipeline'
]
