"""
Logging configuration for ctxvault.

Provides centralized logging setup with console and rotating file outputs and
optional JSON formatting. Job log entries carry ``job_id``/``project_id``
attributes which both formatters render.
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Record attributes attached through ``extra=`` by the job coordinator
CONTEXT_FIELDS = ("job_id", "project_id")


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class ContextFormatter(logging.Formatter):
    """Plain text formatter that appends job context when present."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{field}={getattr(record, field)}"
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        ]
        if context:
            message = f"{message} [{' '.join(context)}]"
        return message


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_format: bool = False,
    max_log_size_mb: int = 10,
    log_backups: int = 5,
) -> None:
    """
    Configure application-wide logging for ctxvault.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file for file output
        json_format: Use JSON formatting for logs
        max_log_size_mb: Maximum log file size in MB before rotation
        log_backups: Number of backup log files to keep

    Example:
        setup_logging(level="DEBUG", log_file=Path("~/.ctxvault/server.log"))
    """
    if json_format:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = ContextFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stderr keeps stdout free for the MCP stdio transport
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(numeric_level)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(log_file),
                maxBytes=max_log_size_mb * 1024 * 1024,
                backupCount=log_backups,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(numeric_level)
            root_logger.addHandler(file_handler)
            root_logger.info(f"Logging to file: {log_file}")
        except OSError as e:
            root_logger.warning(f"Failed to set up file logging: {e}. Using console only.")

    root_logger.debug(
        f"Logging initialized: level={level}, "
        f"file={'enabled' if log_file else 'disabled'}, "
        f"format={'JSON' if json_format else 'text'}"
    )


def set_log_level(level: str) -> None:
    """
    Dynamically change the log level for all handlers.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers:
        handler.setLevel(getattr(logging, level.upper()))

    root_logger.info(f"Log level changed to: {level}")


def setup_logging_from_config(config, level: Optional[str] = None) -> None:
    """
    Configure logging from the ``logging`` section of a Config.

    Args:
        config: Loaded Config
        level: Overrides the configured level when given
    """
    log_file = config.get("logging", "file")
    setup_logging(
        level=level or config.get("logging", "level", default="INFO"),
        log_file=Path(log_file).expanduser() if log_file else None,
        json_format=config.get("logging", "json", default=False),
    )
