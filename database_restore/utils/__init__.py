"""
Database Restore Utilities

Retry helpers for the restore flow.
"""

from .retry import retry_on_lock_contention

__all__ = [
    'retry_on_lock_contention'
]
