# =============================================================================
# lib/log.py - Structured Logging
# =============================================================================
# Leveled, structured log records on top of the stdlib logging module.
#
# Usage:
#   logger = configure_logging(settings)
#   logger.info("Incoming Request: GET /", ip="127.0.0.1", user_agent="curl")
#
# The logger is built once at bootstrap and handed to every component that
# needs it. Nothing here reads a module-level logger on its own.
# =============================================================================

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

DEFAULT_LOGGER_NAME = "app"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

COMBINED_LOG_FILE = "combined.log"
ERROR_LOG_FILE = "error.log"

# Process-fatal fault channels (child loggers) and their own files
EXCEPTIONS_CHANNEL = "exceptions"
REJECTIONS_CHANNEL = "rejections"
FAULT_LOG_FILES = {
    EXCEPTIONS_CHANNEL: "exceptions.log",
    REJECTIONS_CHANNEL: "rejections.log",
}

# Attribute mapping is stored on the LogRecord under this name
ATTRIBUTES_KEY = "attributes"


# =============================================================================
# Formatters
# =============================================================================

def _record_attributes(record: logging.LogRecord) -> dict[str, Any]:
    attributes = getattr(record, ATTRIBUTES_KEY, None)
    return attributes if isinstance(attributes, dict) else {}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line, for files and log aggregators.

    Attributes are merged at the top level next to timestamp/level/message.
    Values that are not JSON serializable are written with str().
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).strftime(TIMESTAMP_FORMAT),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in _record_attributes(record).items():
            payload.setdefault(key, value)
        if record.exc_info:
            payload.setdefault("exc_info", self.formatException(record.exc_info))
        return json.dumps(payload, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable console lines with attributes appended as key=value."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt=TIMESTAMP_FORMAT,
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        attributes = _record_attributes(record)
        if not attributes:
            return line
        # Multi-line values (stack traces) go after the attribute list
        inline = []
        trailing = []
        for key, value in attributes.items():
            text = str(value)
            if "\n" in text:
                trailing.append(text.rstrip())
            else:
                inline.append(f"{key}={text}")
        if inline:
            line = f"{line} | {' '.join(inline)}"
        if trailing:
            line = "\n".join([line, *trailing])
        return line


# =============================================================================
# Structured Logger
# =============================================================================

class StructuredLogger:
    """
    Leveled logger accepting a message plus an optional attribute mapping.

    Thin wrapper around a stdlib logger so handlers, levels and formatters
    stay standard. Attributes are passed as keyword arguments:

        logger.error("Error: boom", status=500, url="/x", method="GET")
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def child(self, suffix: str) -> "StructuredLogger":
        """Logger for `<name>.<suffix>`; its records also reach this logger's sinks."""
        return StructuredLogger(self._logger.getChild(suffix))

    def log(self, level: int, message: str, **attributes: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, message, extra={ATTRIBUTES_KEY: attributes})

    def debug(self, message: str, **attributes: Any) -> None:
        self.log(logging.DEBUG, message, **attributes)

    def info(self, message: str, **attributes: Any) -> None:
        self.log(logging.INFO, message, **attributes)

    def warn(self, message: str, **attributes: Any) -> None:
        self.log(logging.WARNING, message, **attributes)

    warning = warn

    def error(self, message: str, **attributes: Any) -> None:
        self.log(logging.ERROR, message, **attributes)


# =============================================================================
# Configuration
# =============================================================================

def configure_logging(settings, name: str = DEFAULT_LOGGER_NAME) -> StructuredLogger:
    """
    Build the service logger from settings.

    Sinks:
    - console (stderr), human-readable, every enabled level
    - LOG_DIR/combined.log, JSON lines, every enabled level (when LOG_DIR set)
    - LOG_DIR/error.log, JSON lines, ERROR and above (when LOG_DIR set)
    - LOG_DIR/exceptions.log and LOG_DIR/rejections.log, JSON lines, records
      of the `<name>.exceptions` / `<name>.rejections` children only

    Calling it again replaces the handlers installed by the previous call.

    Args:
        settings: Settings instance (reads resolved_log_level and LOG_DIR)
        name: stdlib logger name

    Returns:
        StructuredLogger wrapping the configured stdlib logger
    """
    logger = logging.getLogger(name)
    _remove_handlers(logger)

    logger.setLevel(settings.resolved_log_level)
    logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ConsoleFormatter())
    logger.addHandler(console)

    if settings.LOG_DIR:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        combined = logging.FileHandler(log_dir / COMBINED_LOG_FILE, encoding="utf-8")
        combined.setFormatter(JsonFormatter())
        logger.addHandler(combined)

        errors = logging.FileHandler(log_dir / ERROR_LOG_FILE, encoding="utf-8")
        errors.setLevel(logging.ERROR)
        errors.setFormatter(JsonFormatter())
        logger.addHandler(errors)

    for channel, filename in FAULT_LOG_FILES.items():
        fault_logger = logger.getChild(channel)
        _remove_handlers(fault_logger)
        fault_logger.setLevel(logging.NOTSET)
        fault_logger.propagate = True
        if settings.LOG_DIR:
            sink = logging.FileHandler(Path(settings.LOG_DIR) / filename, encoding="utf-8")
            sink.setFormatter(JsonFormatter())
            fault_logger.addHandler(sink)

    return StructuredLogger(logger)


def _remove_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
