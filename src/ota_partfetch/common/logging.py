"""Structured logging utilities."""

import logging
import logging.handlers
import json
import sys
import threading
from contextvars import ContextVar
from typing import Any, Dict, Optional, Union
from datetime import datetime, timezone
from pathlib import Path

# Fields attached by LogContext; per thread and per asyncio task
_context_fields: ContextVar[Dict[str, Any]] = ContextVar("ota_partfetch_log_fields", default={})

_factory_lock = threading.Lock()
_factory_installed = False

# Loggers of the HTTP stack log every connection at DEBUG
NOISY_LOGGERS = ("urllib3", "requests", "charset_normalizer")


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Besides the standard fields, a record may carry ``extra_fields``
    (passed via ``extra=``) and ``context_fields`` (set by LogContext).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            log_data["exception"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }
            # PartFetchError subclasses carry keyword context
            context = getattr(exc, "context", None)
            if isinstance(context, dict) and context:
                log_data["exception"]["context"] = {k: str(v) for k, v in context.items()}

        log_data.update(getattr(record, "context_fields", None) or {})
        log_data.update(getattr(record, "extra_fields", None) or {})

        return json.dumps(log_data, default=str)


class DetailedFormatter(logging.Formatter):
    """Human-readable detailed formatter."""

    def __init__(self) -> None:
        fmt = (
            "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(funcName)s:%(lineno)d | "
            "%(message)s"
        )
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")


class SimpleFormatter(logging.Formatter):
    """Simple formatter for console output."""

    def __init__(self) -> None:
        super().__init__(fmt="%(levelname)-8s | %(name)s | %(message)s")


_CONSOLE_FORMATTERS = {
    "json": StructuredFormatter,
    "detailed": DetailedFormatter,
    "simple": SimpleFormatter,
}


def setup_logging(
    level: str = "INFO",
    format: str = "simple",
    log_file: Optional[Union[str, Path]] = None,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Console format type (simple, detailed, json)
        log_file: Optional log file path, always written as JSON lines
        max_file_size_mb: Max log file size in MB before rotation
        backup_count: Number of rotated files to keep
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_CONSOLE_FORMATTERS.get(format, SimpleFormatter)())
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get logger with structured logging support."""
    return logging.getLogger(name)


def _install_record_factory() -> None:
    """Wrap the current record factory once so records pick up context fields."""
    global _factory_installed
    with _factory_lock:
        if _factory_installed:
            return
        base_factory = logging.getLogRecordFactory()

        def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = base_factory(*args, **kwargs)
            fields = _context_fields.get()
            if fields:
                record.context_fields = dict(fields)
            return record

        logging.setLogRecordFactory(record_factory)
        _factory_installed = True


class LogContext:
    """Context manager that adds structured fields to every log record.

    Used around a single extraction so that all records emitted by the
    remote, archive and payload layers carry the locator and member name.
    Fields live in a context variable, so extractions running in parallel
    threads (API requests) keep their own fields. Contexts nest; inner
    fields override outer ones.
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token = None

    def __enter__(self) -> "LogContext":
        _install_record_factory()
        self._token = _context_fields.set({**_context_fields.get(), **self.fields})
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        _context_fields.reset(self._token)
