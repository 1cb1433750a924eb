"""Logging setup for minibt.

Console output goes through rich, files and structured mode get JSON or
plain lines. Every record carries the correlation id of the operation that
emitted it.
"""

from __future__ import annotations

import json
import logging
import logging.config
import sys
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from minibt.models import ObservabilityConfig

correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "correlation_id"}


class CorrelationFilter(logging.Filter):
    """Stamp each record with the current correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if hasattr(record, "correlation_id"):
            log_entry["correlation_id"] = record.correlation_id
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Fields passed through ``extra=``
        log_entry.update(
            {
                key: value
                for key, value in record.__dict__.items()
                if key not in _RECORD_ATTRIBUTES
            }
        )
        return json.dumps(log_entry, default=str)


class CorrelationRichHandler(RichHandler):
    """RichHandler on stderr that renders messages as plain text.

    Log messages carry tracker URLs, peer addresses and file names, so rich
    markup is never interpreted.
    """

    def __init__(self, console: Console | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("markup", False)
        kwargs.setdefault("show_path", False)
        kwargs.setdefault("rich_tracebacks", True)
        super().__init__(console=console or Console(stderr=True), **kwargs)


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure the ``minibt`` logger tree from the observability section."""
    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)

    if config.structured_logging:
        console_handler: dict[str, Any] = {
            "class": "logging.StreamHandler",
            "formatter": "structured",
            "stream": sys.stderr,
        }
    else:
        console_handler = {"()": CorrelationRichHandler, "formatter": "rich"}
    console_handler["level"] = config.log_level.value
    console_handler["filters"] = ["correlation"]

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "rich": {"format": "[%(correlation_id)s] %(message)s"},
            "structured": {"()": StructuredFormatter},
            "simple": {
                "format": "%(asctime)s %(levelname)s %(correlation_id)s %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {"correlation": {"()": CorrelationFilter}},
        "handlers": {"console": console_handler},
        "loggers": {
            "minibt": {
                "level": config.log_level.value,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {"level": logging.WARNING, "handlers": ["console"]},
    }

    if config.log_file:
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": config.log_level.value,
            "formatter": "structured" if config.structured_logging else "simple",
            "filters": ["correlation"],
            "filename": config.log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
        }
        logging_config["loggers"]["minibt"]["handlers"].append("file")

    logging.config.dictConfig(logging_config)

    if config.log_correlation_id:
        set_correlation_id()


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``minibt`` namespace."""
    if name == "minibt" or name.startswith("minibt."):
        return logging.getLogger(name)
    return logging.getLogger(f"minibt.{name}")


def set_correlation_id(corr_id: str | None = None) -> str:
    """Set the correlation id for the current context, generating one if needed."""
    if corr_id is None:
        corr_id = str(uuid.uuid4())
    correlation_id.set(corr_id)
    return corr_id


class LoggingContext:
    """Log the start, end and duration of an operation under a fresh correlation id."""

    def __init__(self, operation: str, logger: logging.Logger | None = None, **kwargs):
        self.operation = operation
        self.kwargs = kwargs
        self.logger = logger or get_logger(__name__)
        self.start_time: float | None = None

    def __enter__(self):
        self.start_time = time.time()
        set_correlation_id()
        self.logger.info("Starting %s", self.operation, extra=self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time if self.start_time else 0
        if exc_type is None:
            self.logger.info(
                "Completed %s in %.3fs", self.operation, duration, extra=self.kwargs
            )
        else:
            self.logger.error(
                "Failed %s in %.3fs: %s",
                self.operation,
                duration,
                exc_val,
                extra=self.kwargs,
            )
        return False
