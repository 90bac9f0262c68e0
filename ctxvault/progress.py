"""
Progress reporting for ctxvault.

The orchestrator reports percentage milestones and log lines to a
``ProgressSink``. ``ProgressReporter`` maps per-file progress into a
percentage sub-range and keeps an ETA estimate.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    """
    Progress of the per-file phase of an index run.

    Attributes:
        percent: Overall run progress (0-100)
        current: Number of files visited so far
        total: Total number of eligible files
        filename: File just visited
        elapsed_seconds: Time elapsed since the phase started
        eta_seconds: Estimated time remaining (None if unknown)
        files_per_second: Processing rate
    """
    percent: float
    current: int
    total: int
    filename: str
    elapsed_seconds: float
    eta_seconds: Optional[float] = None
    files_per_second: float = 0.0


class ProgressSink:
    """
    Receiver of progress updates and log lines from an index run.

    The base implementation writes log lines to the module logger and drops
    percentage updates. The job coordinator supplies a sink bound to a job.
    """

    def progress(self, percent: float, message: Optional[str] = None) -> None:
        if message:
            logger.info(message)

    def log(self, message: str, level: str = "info") -> None:
        logger.log(_level_number(level), message)


def _level_number(level: str) -> int:
    # "success" entries are informational for the logging module
    if level == "success":
        return logging.INFO
    return getattr(logging, level.upper(), logging.INFO)


class ProgressReporter:
    """
    Maps file-by-file progress into the ``[start, end]`` percentage range.

    Features:
    - Tracks files visited and total count
    - Calculates files/second processing rate
    - Estimates time remaining (ETA)
    """

    def __init__(self, total_files: int, start_percent: float, end_percent: float):
        """
        Initialize progress reporter.

        Args:
            total_files: Total number of files in the phase
            start_percent: Overall progress when the phase begins
            end_percent: Overall progress when the phase ends
        """
        self.total_files = total_files
        self.start_percent = start_percent
        self.end_percent = end_percent
        self.current_file = 0
        self.start_time = time.time()

    def update(self, filename: str) -> ProgressEvent:
        """
        Record that one more file was visited.

        Args:
            filename: File just visited

        Returns:
            ProgressEvent with current statistics
        """
        self.current_file += 1
        elapsed = time.time() - self.start_time

        files_per_second = self.current_file / elapsed if elapsed > 0 else 0
        remaining_files = self.total_files - self.current_file
        eta = remaining_files / files_per_second if files_per_second > 0 else None

        fraction = self.current_file / self.total_files if self.total_files else 1.0
        percent = self.start_percent + min(fraction, 1.0) * (self.end_percent - self.start_percent)

        return ProgressEvent(
            percent=percent,
            current=self.current_file,
            total=self.total_files,
            filename=filename,
            elapsed_seconds=elapsed,
            eta_seconds=eta,
            files_per_second=files_per_second,
        )

    @staticmethod
    def format_eta(seconds: Optional[float]) -> str:
        """
        Format ETA in human-readable form.

        Args:
            seconds: Number of seconds (None if unknown)

        Returns:
            Formatted string like "2m 30s", "1h 15m", or "unknown"
        """
        if seconds is None:
            return "unknown"

        total_secs = int(seconds)
        minutes, secs = divmod(total_secs, 60)
        hours, minutes = divmod(minutes, 60)

        if hours > 0:
            return f"{hours}h {minutes}m"
        elif minutes > 0:
            return f"{minutes}m {secs}s"
        else:
            return f"{secs}s"

    @staticmethod
    def format_duration(seconds: float) -> str:
        """
        Format duration in human-readable form.

        Args:
            seconds: Number of seconds

        Returns:
            Formatted string like "2.5s", "1m 30s", "1h 15m"
        """
        if seconds < 60:
            return f"{seconds:.1f}s"

        total_secs = int(seconds)
        minutes, secs = divmod(total_secs, 60)
        hours, minutes = divmod(minutes, 60)

        if hours > 0:
            return f"{hours}h {minutes}m"
        else:
            return f"{minutes}m {secs}s"

    def get_summary(self) -> str:
        """
        Get a summary of current progress.

        Returns:
            Human-readable progress summary
        """
        elapsed = time.time() - self.start_time
        files_per_second = self.current_file / elapsed if elapsed > 0 else 0

        return (
            f"Processed {self.current_file}/{self.total_files} files "
            f"in {self.format_duration(elapsed)} "
            f"({files_per_second:.1f} files/sec)"
        )
