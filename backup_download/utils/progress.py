"""
Download Progress Utilities

Turns a stream of chunk sizes into throttled progress observations (one per
whole percentage point) and provides two reporters for them: log lines, as
the restore host prints them, and a tqdm bar for interactive terminals.
"""

import logging
import sys
from typing import Optional

from tqdm import tqdm

from ..models.entities import DownloadProgress

logger = logging.getLogger(__name__)


class DownloadProgressTracker:
    """
    Accumulates transferred bytes and decides when to report.

    An observation is produced whenever the whole-number percentage has
    advanced by at least one point since the last observation, so reported
    percentages are strictly increasing. Without a known positive total no
    percentages are produced.

    Example:
        ```python
        tracker = DownloadProgressTracker(total_bytes=1_000_000)
        for chunk in chunks:
            observation = tracker.advance(len(chunk))
            if observation:
                on_progress(observation)
        ```
    """

    def __init__(self, total_bytes: Optional[int] = None):
        self.total_bytes = total_bytes if total_bytes and total_bytes > 0 else None
        self.bytes_transferred = 0
        self.last_reported_percentage = 0

    @property
    def can_report(self) -> bool:
        return self.total_bytes is not None

    def advance(self, chunk_size: int) -> Optional[DownloadProgress]:
        """Record a written chunk; return an observation if one is due."""
        self.bytes_transferred += chunk_size
        if not self.can_report:
            return None

        percentage = min(100, (self.bytes_transferred * 100) // self.total_bytes)
        if percentage >= self.last_reported_percentage + 1:
            self.last_reported_percentage = percentage
            return DownloadProgress(
                bytes_transferred=self.bytes_transferred,
                total_bytes=self.total_bytes,
                percentage=percentage,
            )
        return None

    def snapshot(self) -> DownloadProgress:
        """Current state, regardless of throttling."""
        return DownloadProgress(
            bytes_transferred=self.bytes_transferred,
            total_bytes=self.total_bytes,
            percentage=self.last_reported_percentage if self.can_report else None,
        )


class LoggingProgressReporter:
    """Logs each observation as ``Download progress: N% (x MB / y MB)``."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def __call__(self, progress: DownloadProgress) -> None:
        if progress.percentage is None:
            self._log.info(f"Download progress: {progress.transferred_mb:.2f} MB")
            return
        self._log.info(
            f"Download progress: {progress.percentage}% "
            f"({progress.transferred_mb:.2f} MB / {progress.total_mb:.2f} MB)"
        )


class TqdmProgressReporter:
    """
    Renders observations on a tqdm bar.

    The bar is created on the first observation, once the total is known.
    Call ``close()`` when the download ends.
    """

    def __init__(self, description: str = "Downloading", disable: Optional[bool] = None):
        self._description = description
        self._disable = disable if disable is not None else not _is_tty()
        self._bar: Optional[tqdm] = None

    def __call__(self, progress: DownloadProgress) -> None:
        if self._bar is None:
            self._bar = tqdm(
                total=progress.total_bytes,
                unit="B",
                unit_scale=True,
                desc=self._description,
                disable=self._disable,
            )
        self._bar.update(progress.bytes_transferred - self._bar.n)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


def _is_tty() -> bool:
    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False
