"""
Logging configuration and utilities.

Gamification log records carry the event they belong to (user, event
type, rule, request) as ``extra`` fields. The JSON formatter groups those
under ``context`` and the console formatter appends them to the line, so
one user's activity can be followed across rules and retries.
"""

import logging
import logging.handlers
import sys
import json
import time
from typing import Any, Dict, MutableMapping, Optional, Tuple, Union
from pathlib import Path
from datetime import datetime, timezone

from .config import LoggingConfig, get_config

# Extra fields describing the event being processed
CONTEXT_FIELDS = ("user_id", "event_type", "rule_id", "badge_id", "request_id", "operation")

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Event context fields set on ``record``, in ``CONTEXT_FIELDS`` order."""
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line; event context nested under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = record_context(record)
        if context:
            log_data["context"] = context

        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key in CONTEXT_FIELDS or key.startswith("_"):
                continue
            log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ColorFormatter(logging.Formatter):
    """Colored console formatter with a trailing ``[key=value ...]`` context."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",   # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",   # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, use_color: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = record_context(record)
        if context:
            message += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        if not self.use_color:
            return message
        color = self.COLORS.get(record.levelname, self.RESET)
        return f"{color}{message}{self.RESET}"


def setup_logging(
    config: Optional[LoggingConfig] = None,
    log_file: Optional[str] = None,
    json_format: Optional[bool] = None
) -> None:
    """
    Configure the root logger.

    Args:
        config: Logging configuration; defaults to ``get_config().logging``
        log_file: Rotating log file, overrides ``config.file_path``
        json_format: Use JSON on every handler; defaults to ``config.json_format``
    """
    if config is None:
        config = get_config().logging
    if json_format is None:
        json_format = config.json_format

    def make_formatter(use_color: bool) -> logging.Formatter:
        if json_format:
            return JSONFormatter()
        return ColorFormatter(fmt=config.format, datefmt=config.date_format, use_color=use_color)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(make_formatter(use_color=sys.stdout.isatty()))
    handlers = [console_handler]

    file_path = log_file or config.file_path
    if file_path:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                filename=file_path,
                maxBytes=config.max_file_size,
                backupCount=config.backup_count,
                encoding="utf-8"
            )
        except OSError as e:
            logging.warning(f"Failed to setup file logging: {e}")
        else:
            file_handler.setFormatter(make_formatter(use_color=False))
            handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(config.level.value)

    logging.basicConfig(level=config.level.value, handlers=handlers, force=True)

    # SQL echo is controlled by DatabaseConfig.echo, not the log level
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured with level: {config.level.value}")


class EventLoggerAdapter(logging.LoggerAdapter):
    """Adds the event context to every record; per-call ``extra`` wins."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> Tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def event_logger(logger: logging.Logger, **context: Any) -> EventLoggerAdapter:
    """Logger bound to an event context such as ``user_id`` and ``event_type``."""
    return EventLoggerAdapter(logger, {k: v for k, v in context.items() if v is not None})


class LoggingContext:
    """
    Logs the start and end of a block with its duration in ``duration_ms``.
    """

    def __init__(self, logger: Union[logging.Logger, logging.LoggerAdapter], message: str, level: int = logging.DEBUG):
        self.logger = logger
        self.message = message
        self.level = level
        self.started: Optional[float] = None

    def __enter__(self):
        self.started = time.perf_counter()
        self.logger.log(self.level, f"Starting: {self.message}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = round((time.perf_counter() - self.started) * 1000, 3)
        status = "completed" if exc_type is None else f"failed ({exc_type.__name__})"
        self.logger.log(
            self.level,
            f"{self.message} {status} in {duration_ms:.1f}ms",
            extra={"duration_ms": duration_ms},
        )
        return False
