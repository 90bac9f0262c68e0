"""
Tests for logging setup and formatters.
"""

import json
import logging

import pytest

from ctxvault.logging_config import ContextFormatter, JsonFormatter, set_log_level, setup_logging


def make_record(**extra):
    record = logging.LogRecord("ctxvault.jobs", logging.INFO, __file__, 10, "job message", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_job_context():
    data = json.loads(JsonFormatter().format(make_record(job_id="job_1_1", project_id="proj")))

    assert data["message"] == "job message"
    assert data["level"] == "INFO"
    assert data["logger"] == "ctxvault.jobs"
    assert data["job_id"] == "job_1_1"
    assert data["project_id"] == "proj"


def test_json_formatter_without_context():
    data = json.loads(JsonFormatter().format(make_record()))

    assert "job_id" not in data


def test_context_formatter_appends_fields():
    formatter = ContextFormatter(fmt="%(message)s")

    assert formatter.format(make_record(job_id="job_1_1")) == "job message [job_id=job_1_1]"
    assert formatter.format(make_record()) == "job message"


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_with_file(temp_dir, restore_root_logger):
    log_file = temp_dir / "logs" / "ctxvault.log"

    setup_logging(level="DEBUG", log_file=log_file, json_format=True)
    logging.getLogger("ctxvault.test").info("written to file")
    for handler in restore_root_logger.handlers:
        handler.flush()

    assert restore_root_logger.level == logging.DEBUG
    lines = [json.loads(line) for line in log_file.read_text().splitlines()]
    assert any(line["message"] == "written to file" for line in lines)

    set_log_level("WARNING")
    assert all(h.level == logging.WARNING for h in restore_root_logger.handlers)
