"""Structured JSON logging for production observability.

Provides:
- JSON-formatted logs for log aggregation systems (ELK, Loki, etc.)
- Job context propagation (job id and task name) for worker logs
- Per-layer context passed as ``extra`` (layer, type, key)
- Timing of backend calls at debug level

Usage:
    from tierstore.observability.logging import configure_logging

    configure_logging(json_format=True, level="INFO")

    logger = logging.getLogger(__name__)
    logger.warning("Layer failed", extra={"layer": "local:/srv", "type": "docs"})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

# Context variables for job correlation
job_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("job_id", default="")
task_var: contextvars.ContextVar[str] = contextvars.ContextVar("task", default="")

# Standard LogRecord attributes, never copied as extra fields
_STANDARD_ATTRS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "taskName",
    "message",
}


class JsonFormatter(logging.Formatter):
    """JSON log formatter with job context support.

    Output format:
    {
        "timestamp": "2026-01-10T12:34:56.789Z",
        "level": "WARNING",
        "logger": "tierstore.storage",
        "message": "Layer get failed",
        "module": "storage",
        "function": "get",
        "line": 42,
        "job_id": "abc-123",
        "task": "replicate_store",
        "layer": "local:/srv/blobs/cache",
        "type": "documents",
        "key": "8843d7f92416211de9ebb963ff4ce28125932878"
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        job_id = job_id_var.get()
        if job_id:
            log_data["job_id"] = job_id

        task = task_var.get()
        if task:
            log_data["task"] = task

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)  # Verify it's JSON serializable
                    log_data[key] = value
                except (TypeError, ValueError):
                    log_data[key] = str(value)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for development.

    Output format:
    2026-01-10 12:34:56 | WARNING | tierstore.storage | Layer get failed | job=abc-123
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname

        if self.use_colors:
            color = self.COLORS.get(level, "")
            level = f"{color}{level}{self.RESET}"

        message = record.getMessage()

        context_parts = []
        job_id = job_id_var.get()
        if job_id:
            context_parts.append(f"job={job_id[:8]}")
        layer = getattr(record, "layer", None)
        if layer:
            context_parts.append(f"layer={layer}")

        context = f" | {' '.join(context_parts)}" if context_parts else ""

        result = f"{timestamp} | {level:8} | {record.name} | {message}{context}"

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
) -> None:
    """Configure application-wide logging.

    Args:
        json_format: Use JSON format (recommended for production)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_colors: Use ANSI colors in console format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(use_colors=use_colors))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)


class LogContext:
    """Context manager for adding temporary job context.

    Usage:
        with LogContext(job_id=job.id, task=job.task):
            logger.info("Processing job")  # Includes job_id and task
    """

    def __init__(self, **kwargs: Any) -> None:
        self.extra = kwargs
        self._tokens: dict[str, contextvars.Token[str]] = {}

    def __enter__(self) -> "LogContext":
        if "job_id" in self.extra:
            self._tokens["job_id"] = job_id_var.set(self.extra["job_id"])
        if "task" in self.extra:
            self._tokens["task"] = task_var.set(self.extra["task"])
        return self

    def __exit__(self, *args: Any) -> None:
        for key, token in self._tokens.items():
            if key == "job_id":
                job_id_var.reset(token)
            elif key == "task":
                task_var.reset(token)


@contextmanager
def log_duration(logger: logging.Logger, message: str) -> Iterator[None]:
    """Log ``message`` with the elapsed time of the block at debug level."""
    start = time.monotonic()
    try:
        yield
    finally:
        if logger.isEnabledFor(logging.DEBUG):
            duration_ms = (time.monotonic() - start) * 1000
            logger.debug(f"{message} ({duration_ms:.1f}ms)")
