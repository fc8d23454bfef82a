"""
Structured Logging Configuration

Provides:
- Cycle correlation IDs so every line of one heartbeat can be grouped
- JSON formatting for the on-disk decision log
- Human-readable console output
- Log rotation
"""

import contextvars
import json
import logging
import logging.handlers
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, TextIO, Union
from uuid import uuid4


cycle_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "cycle_id", default=None
)


def short_address(address: Optional[str]) -> str:
    """Shorten an address for log output."""
    if not address:
        return "-"
    return f"{address[:8]}..."


class CorrelationContext:
    """Context manager binding a cycle id to all log records inside it."""

    def __init__(self, cycle_id: Optional[str] = None):
        self.cycle_id = cycle_id or uuid4().hex[:12]
        self._token = None

    def __enter__(self):
        self._token = cycle_id_var.set(self.cycle_id)
        return self

    def __exit__(self, *args):
        cycle_id_var.reset(self._token)


def get_cycle_id() -> Optional[str]:
    return cycle_id_var.get()


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, include_traceback: bool = True, extra_fields: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.include_traceback = include_traceback
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        cycle_id = cycle_id_var.get()
        if cycle_id:
            log_data["cycle_id"] = cycle_id

        log_data.update(self.extra_fields)

        if record.exc_info and self.include_traceback:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, default=str)


class StructuredFormatter(logging.Formatter):
    """Human-readable structured formatter for console output."""

    def __init__(self, use_color: bool = True, stream: Optional[TextIO] = None):
        super().__init__()
        self.use_color = use_color
        self.stream = stream if stream is not None else sys.stderr
        self.colors = {
            "DEBUG": "\033[36m",
            "INFO": "\033[32m",
            "WARNING": "\033[33m",
            "ERROR": "\033[31m",
            "CRITICAL": "\033[35m",
            "RESET": "\033[0m",
        }

    def _is_tty(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )

        level = record.levelname
        if self.use_color and self._is_tty():
            level = f"{self.colors.get(level, '')}{level}{self.colors['RESET']}"

        parts = [
            f"[{timestamp}]",
            f"[{level}]",
            f"[{record.name}]",
            record.getMessage(),
        ]

        cycle_id = cycle_id_var.get()
        if cycle_id:
            parts.append(f"[cycle={cycle_id}]")

        if record.exc_info:
            exc_text = "".join(traceback.format_exception(*record.exc_info))
            parts.append(f"\n{exc_text}")

        return " ".join(parts)


def setup_logging(
    log_file: Union[str, Path],
    level: Union[str, int] = logging.INFO,
    json_format: bool = True,
    console_output: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    extra_fields: Optional[Dict[str, Any]] = None,
) -> logging.Logger:
    """
    Configure logging for the agent.

    Args:
        log_file: Path of the rotating decision log
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting for the file log
        console_output: Enable console output
        max_bytes: Max size of log file before rotation
        backup_count: Number of backup files to keep
        extra_fields: Additional fields to include in all JSON records

    Returns:
        Configured root logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    if json_format:
        file_handler.setFormatter(JSONFormatter(extra_fields=extra_fields))
    else:
        file_handler.setFormatter(StructuredFormatter(use_color=False))
    root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(StructuredFormatter(use_color=True, stream=console_handler.stream))
        root_logger.addHandler(console_handler)

    # Keep RPC client chatter out of the decision log
    logging.getLogger("solana").setLevel(logging.WARNING)
    logging.getLogger("solders").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger
