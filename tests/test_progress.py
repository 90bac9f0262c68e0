"""
Tests for progress reporting.
"""

import logging
import time

import pytest

from ctxvault.progress import ProgressReporter, ProgressSink


class TestProgressReporter:
    """Test suite for ProgressReporter class."""

    def test_progress_reporter_initialization(self):
        """ProgressReporter initializes correctly."""
        reporter = ProgressReporter(total_files=100, start_percent=15, end_percent=85)

        assert reporter.total_files == 100
        assert reporter.current_file == 0

    def test_percent_maps_into_range(self):
        """Per-file progress is spread over the configured percentage range."""
        reporter = ProgressReporter(total_files=4, start_percent=20, end_percent=80)

        percents = [reporter.update(f"file{i}.py").percent for i in range(4)]

        assert percents == pytest.approx([35, 50, 65, 80])

    def test_update_fields(self):
        reporter = ProgressReporter(total_files=10, start_percent=15, end_percent=85)

        event = reporter.update("file1.py")

        assert event.current == 1
        assert event.total == 10
        assert event.filename == "file1.py"
        assert event.elapsed_seconds >= 0

    def test_percent_never_exceeds_end(self):
        reporter = ProgressReporter(total_files=1, start_percent=15, end_percent=85)

        reporter.update("a")
        event = reporter.update("b")

        assert event.percent == 85

    def test_empty_phase(self):
        reporter = ProgressReporter(total_files=0, start_percent=15, end_percent=85)
        assert reporter.update("x").percent == 85

    def test_eta_calculation(self):
        """Progress reporter calculates ETA once files have been processed."""
        reporter = ProgressReporter(total_files=100, start_percent=0, end_percent=100)

        for i in range(10):
            reporter.update(f"file{i}.py")
            time.sleep(0.01)

        event = reporter.update("file10.py")
        assert event.eta_seconds is not None
        assert event.eta_seconds > 0
        assert event.files_per_second > 0

    def test_eta_at_completion(self):
        reporter = ProgressReporter(total_files=5, start_percent=0, end_percent=100)

        for i in range(5):
            time.sleep(0.001)
            event = reporter.update(f"file{i}.py")

        assert event.eta_seconds == 0

    def test_get_summary(self):
        reporter = ProgressReporter(total_files=3, start_percent=0, end_percent=100)
        reporter.update("a")

        assert reporter.get_summary().startswith("Processed 1/3 files in ")


class TestFormatting:
    """Test suite for human-readable time formatting."""

    def test_format_eta(self):
        assert ProgressReporter.format_eta(None) == "unknown"
        assert ProgressReporter.format_eta(45) == "45s"
        assert ProgressReporter.format_eta(150) == "2m 30s"
        assert ProgressReporter.format_eta(4500) == "1h 15m"

    def test_format_duration(self):
        assert ProgressReporter.format_duration(2.5) == "2.5s"
        assert ProgressReporter.format_duration(90) == "1m 30s"
        assert ProgressReporter.format_duration(4500) == "1h 15m"


class TestProgressSink:
    """The default sink writes to the logging module."""

    def test_log_levels(self, caplog):
        sink = ProgressSink()

        with caplog.at_level(logging.DEBUG, logger="ctxvault.progress"):
            sink.log("done", "success")
            sink.log("careful", "warning")
            sink.progress(50, "halfway")
            sink.progress(60)

        levels = {r.getMessage(): r.levelno for r in caplog.records}
        assert levels == {"done": logging.INFO, "careful": logging.WARNING, "halfway": logging.INFO}
