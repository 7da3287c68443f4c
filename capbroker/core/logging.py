"""Structured logging for the capability broker.

Records carry broker context (component, tool, backend, ...) as attributes.
The file handler writes them as JSON lines; the console shows a short
coloured line with the same context appended.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from logging.handlers import RotatingFileHandler


# Context fields promoted to record attributes, with their console label
_CONTEXT_FIELDS = {
    "component": None,
    "tool": "tool",
    "backend": "backend",
    "cache_id": "script",
    "duration_ms": "time",
    "success": None,
}

LOG_FILE = "capbroker.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Broker context attached to a record, known fields first."""
    context = {key: getattr(record, key) for key in _CONTEXT_FIELDS if hasattr(record, key)}
    context.update(getattr(record, "extra_data", {}))
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Human-readable console lines: `[12:00:00] INFO     [cache] message (script=ab12)`."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{self.COLORS.get(record.levelno, '')}[{stamp}] {record.levelname:8}{self.RESET}"

        component = getattr(record, "component", None)
        if component:
            line += f" [{component}]"
        line += f" {record.getMessage()}"

        details = [
            f"{label}={_console_value(key, getattr(record, key))}"
            for key, label in _CONTEXT_FIELDS.items()
            if label and hasattr(record, key)
        ]
        if details:
            line += f" ({', '.join(details)})"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _console_value(key: str, value: Any) -> str:
    if key == "duration_ms":
        return f"{value:.0f}ms"
    return str(value)


class BrokerLogger:
    """Logger wrapper with convenience methods for broker events.

    Keyword arguments become structured context on the record.
    """

    def __init__(self, name: str, logger: logging.Logger):
        self._name = name
        self._logger = logger

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._log(logging.ERROR, message, context)

    def _log(self, level: int, message: str, context: dict[str, Any]):
        extra = {key: context.pop(key) for key in _CONTEXT_FIELDS if key in context}
        if context:
            extra["extra_data"] = context
        self._logger.log(level, message, extra=extra)

    def scan_completed(self, scanner: str, tool_count: int, duration_ms: float):
        self.info(
            f"Scanner {scanner} discovered {tool_count} tools",
            component="scanner",
            duration_ms=duration_ms,
            tool_count=tool_count,
        )

    def tool_executed(self, name: str, backend: str, success: bool, duration_ms: float):
        self._log(
            logging.INFO if success else logging.WARNING,
            f"Tool {'executed' if success else 'failed'}: {name}",
            {"component": "registry", "tool": name, "backend": backend,
             "success": success, "duration_ms": duration_ms},
        )

    def script_cached(self, cache_id: str, name: str, generated_by: str):
        self.info(
            f"Script cached: {name}",
            component="cache",
            cache_id=cache_id,
            generated_by=generated_by,
        )

    def scripts_evicted(self, count: int):
        self.info(f"Evicted {count} scripts from cache", component="cache", evicted=count)

    def negotiated(self, name: str, reason: str):
        self.info(f"Negotiated unresolved request: {name} ({reason})", component="negotiator", tool=name)


_loggers: dict[str, BrokerLogger] = {}
_initialized = False


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    log_dir: Optional[Path] = None,
    file_enabled: bool = True,
    console_enabled: bool = True
) -> None:
    """Configure the `capbroker` logger hierarchy once per process.

    Args:
        level: Log level name
        format_type: Console format, "json" or "text"
        log_dir: Directory for the rotating JSON log file
        file_enabled: Write the log file
        console_enabled: Write to stderr
    """
    global _initialized

    if _initialized:
        return

    root = logging.getLogger("capbroker")
    root.setLevel(logging.getLevelName(level.upper()))
    root.handlers.clear()

    if console_enabled:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(JSONFormatter() if format_type == "json" else ColoredFormatter())
        root.addHandler(console)

    if file_enabled and log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    _initialized = True


def get_logger(name: str = "capbroker") -> BrokerLogger:
    """Get the broker logger for a subsystem, e.g. `get_logger("cache")`."""
    if name not in _loggers:
        _loggers[name] = BrokerLogger(name, logging.getLogger(f"capbroker.{name}"))
    return _loggers[name]
