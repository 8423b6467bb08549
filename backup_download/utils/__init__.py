"""
Backup Download Utilities

Progress tracking and reporting for streaming downloads.
"""

from .progress import (
    DownloadProgressTracker,
    LoggingProgressReporter,
    TqdmProgressReporter
)

__all__ = [
    'DownloadProgressTracker',
    'LoggingProgressReporter',
    'TqdmProgressReporter'
]
