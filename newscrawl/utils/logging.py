"""
NewsCrawl Logging Configuration
===============================

Console and rotating-file logging for crawl runs.

Component loggers stamp every record with the component name and, inside
a run, the feed id. The JSON formatter lifts those and the run tallies to
top-level keys so one feed's history can be grepped out of a log file.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER = "newscrawl"

# Attributes every LogRecord has; anything else arrived through `extra`
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

RUN_FIELDS = (
    "component",
    "feed_id",
    "feed_url",
    "error_kind",
    "error_code",
    "items_seen",
    "items_persisted",
    "items_skipped",
    "items_rejected",
    "items_failed",
    "duration_seconds",
)


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    extras = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}

    # NewsCrawlError.to_dict() nests its context and names the class error_type
    nested = extras.pop("context", None)
    if isinstance(nested, dict):
        extras = {**nested, **extras}
    if "error_type" in extras and "error_kind" not in extras:
        extras["error_kind"] = extras.pop("error_type")

    return extras


class StructuredFormatter(logging.Formatter):
    """JSON lines: run fields at the top level, remaining extras under "context"."""

    def format(self, record: logging.LogRecord) -> str:
        extras = _record_extras(record)

        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in RUN_FIELDS:
            if key in extras:
                log_data[key] = extras.pop(key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if extras:
            log_data["context"] = extras

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """One colored line per record: time, level, component/feed, message."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        where = getattr(record, "component", record.name)
        feed_id = getattr(record, "feed_id", None)
        if feed_id is not None:
            where = f"{where} feed={feed_id}"

        formatted = (
            f"{color}[{timestamp}] {record.levelname:8}{self.RESET} "
            f"{where} - {record.getMessage()}"
        )
        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)
        return formatted


class ComponentLogger(logging.LoggerAdapter):
    """Adapter carrying component context; per-call `extra` wins over it."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context) -> "ComponentLogger":
        """Same logger with more context, e.g. the feed a run is working on."""
        return ComponentLogger(self.logger, {**self.extra, **context})


def get_logger_for_component(component_name: str, **context) -> ComponentLogger:
    """Logger named `newscrawl.<component>` stamping `component` and `context`.

    Args:
        component_name: Name of the component (e.g., 'fetcher', 'orchestrator')
        **context: Fixed record fields such as feed_id

    Returns:
        ComponentLogger adapter
    """
    return ComponentLogger(
        logging.getLogger(f"{ROOT_LOGGER}.{component_name}"),
        {"component": component_name, **context},
    )


def configure_application_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True,
    structured_logging: bool = False,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> logging.Logger:
    """Install handlers on the `newscrawl` logger, replacing earlier ones.

    Console output goes to stderr so `crawl --json` keeps stdout clean.
    The log file always gets JSON lines.

    Args:
        log_level: Level for all newscrawl loggers
        log_file: Rotating log file path (optional)
        enable_console: Whether to log to stderr
        structured_logging: JSON instead of colored lines on the console
        max_file_size_mb: Rotation threshold for the log file
        backup_count: Rotated files to keep

    Returns:
        The configured `newscrawl` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, log_level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(
            StructuredFormatter() if structured_logging else ConsoleFormatter()
        )
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return logger


class PerformanceLogger:
    """Times a block and logs the duration with the block's context.

    Completion is logged at INFO and failure at WARNING; the exception
    still propagates.
    """

    def __init__(self, logger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.duration: Optional[float] = None
        self._start: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self._start = time.perf_counter()
        self.logger.debug(f"Starting {self.operation}", extra=dict(self.context))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration = time.perf_counter() - self._start
        context = {**self.context, "duration_seconds": round(self.duration, 3)}

        if exc_type is None:
            self.logger.info(
                f"Completed {self.operation} in {self.duration:.3f}s", extra=context
            )
        else:
            context["error_kind"] = exc_type.__name__
            self.logger.warning(
                f"Failed {self.operation} in {self.duration:.3f}s: {exc_val}", extra=context
            )
