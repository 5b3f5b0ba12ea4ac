"""
Logging utilities for kafka_tail.

Provides:
- Context variables (topic, partition) propagated per asyncio task
- JSON and console formatters
- setup_logging() for console and optional rotating file output
- log_with_context() / log_exception() helpers

Console logs go to stderr: stdout is reserved for consumed payloads.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiokafka",
    "kafka",
    "urllib3",
    "httpx",
    "httpcore",
]

_topic_ctx: ContextVar[Optional[str]] = ContextVar("topic", default=None)
_partition_ctx: ContextVar[Optional[int]] = ContextVar("partition", default=None)


def set_log_context(
    topic: Optional[str] = None,
    partition: Optional[int] = None,
) -> None:
    """
    Set context fields for the current task.

    asyncio copies the context when a task is created, so a value set
    inside a partition worker only applies to that worker's records.
    """
    if topic is not None:
        _topic_ctx.set(topic)
    if partition is not None:
        _partition_ctx.set(partition)


def get_log_context() -> Dict[str, Any]:
    """Return the current logging context."""
    return {"topic": _topic_ctx.get(), "partition": _partition_ctx.get()}


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    """

    EXTRA_FIELDS = [
        "topic",
        "partition",
        "offset",
        "start_offset",
        "high_watermark",
        "attempt",
        "attempts",
        "partitions",
        "offset_mode",
        "error_category",
        "error_message",
        "bootstrap_servers",
        "schema_registry_url",
    ]

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        ctx = get_log_context()
        if ctx["topic"] is not None:
            log_entry["topic"] = ctx["topic"]
        if ctx["partition"] is not None:
            log_entry["partition"] = ctx["partition"]

        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        # Explicit extras win over task context
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable console formatter."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            record.levelname,
        ]

        partition = getattr(record, "partition", None)
        if partition is None:
            partition = get_log_context()["partition"]
        if partition is not None:
            parts.append(f"[p{partition}]")

        prefix = " - ".join(parts)
        message = f"{prefix} - {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def get_log_file_path(log_dir: Path, name: str, use_instance_id: bool = True) -> Path:
    """
    Build log file path with a date subfolder.

    Structure: {log_dir}/{YYYY-MM-DD}/{name}_{YYYYMMDD}[_p{pid}].log
    """
    now = datetime.now()
    base_name = f"{name}_{now.strftime('%Y%m%d')}"
    if use_instance_id:
        base_name = f"{base_name}_p{os.getpid()}"
    return log_dir / now.strftime("%Y-%m-%d") / f"{base_name}.log"


def setup_logging(
    name: str = "kafka_tail",
    log_dir: Optional[Path] = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Configure logging with a stderr console handler and an optional
    rotating file handler.

    Args:
        name: Logger name and log file prefix
        log_dir: Directory for log files (no file logging when None)
        json_format: Use JSON format for file logs (default: True)
        console_level: Console handler level (default: INFO)
        file_level: File handler level (default: DEBUG)
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
        suppress_noisy: Quiet down Kafka client and HTTP loggers

    Returns:
        Configured logger instance
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter

    # Remove existing handlers to avoid duplicates on re-init
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ConsoleFormatter())
    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_file = get_log_file_path(Path(log_dir), name)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        if json_format:
            file_formatter: logging.Formatter = JSONFormatter()
        else:
            file_formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(f"Logging initialized: file={log_file}, json={json_format}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log with structured context fields.

    Example:
        log_with_context(
            logger, logging.INFO, "Starting partition",
            partition=3,
            start_offset=41,
        )
    """
    logger.log(level, msg, extra=kwargs)


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log exception with context and optional traceback.

    Automatically extracts error_category from PipelineError subclasses.

    Example:
        try:
            await resolver.resolve(topic, partition, mode)
        except Exception as e:
            log_exception(logger, e, "Offset resolution failed", partition=partition)
    """
    if kwargs.get("error_category") is None and hasattr(exc, "category"):
        cat = exc.category
        kwargs["error_category"] = cat.value if hasattr(cat, "value") else str(cat)

    error_msg = str(exc)
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."
    kwargs["error_message"] = error_msg

    if include_traceback:
        logger.log(level, msg, exc_info=exc, extra=kwargs)
    else:
        logger.log(level, msg, extra=kwargs)


__all__ = [
    "set_log_context",
    "get_log_context",
    "JSONFormatter",
    "ConsoleFormatter",
    "get_log_file_path",
    "setup_logging",
    "get_logger",
    "log_with_context",
    "log_exception",
]
