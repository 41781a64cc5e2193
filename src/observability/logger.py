"""
Structured logging for advocacy-etl

Every pipeline module logs through ``get_logger(__name__)``. Context such as
file names, user ids and counts is passed with ``extra=`` so that, in JSON
mode, each value becomes its own field. Logs go to stderr; stdout is left
for command output such as the run summary.
"""
import logging
import os
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger

ROOT_LOGGER_NAME = "advocacy-etl"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

JSON_FIELDS = "%(timestamp)s %(level)s %(logger)s %(message)s"
TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter emitting UTC ISO-8601 timestamps and a fixed service name
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_record["timestamp"] = created.isoformat(timespec="milliseconds")

        log_record["level"] = (log_record.get("level") or record.levelname).upper()
        log_record["logger"] = record.name
        log_record["service"] = ROOT_LOGGER_NAME


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    return LOG_LEVELS.get(name, logging.INFO)


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str | None = None,
    format_type: str | None = None,
) -> logging.Logger:
    """
    Configure a logger with a single stderr handler

    Args:
        name: Logger name
        level: Log level name; defaults to LOG_LEVEL, then INFO
        format_type: "json" or "text"; defaults to LOG_FORMAT, then "json"

    Returns:
        Configured logger instance
    """
    log_level = _resolve_level(level)
    format_type = (format_type or os.getenv("LOG_FORMAT") or "json").lower()

    if format_type == "json":
        formatter: logging.Formatter = CustomJsonFormatter(fmt=JSON_FIELDS)
    else:
        formatter = logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(log_level)
    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Return the named logger, configuring it from the environment on first use."""
    logger = logging.getLogger(name)
    return logger if logger.handlers else setup_logger(name)


def configure_logging(level: str | None = None, format_type: str | None = None) -> None:
    """
    Reconfigure the root pipeline logger and every module logger created so far

    Module loggers are configured at import time, before settings are
    loaded, so the CLI calls this once settings are known.
    """
    setup_logger(ROOT_LOGGER_NAME, level=level, format_type=format_type)
    for name in list(logging.Logger.manager.loggerDict):
        if name.startswith("src."):
            setup_logger(name, level=level, format_type=format_type)


@contextmanager
def log_operation(operation_name: str, logger: logging.Logger | None = None, **extra_fields):
    """
    Log the start, end and duration of a pipeline step

    Usage:
        with log_operation("Load batch", logger=logger, batch_size=1000):
            ...

    Exceptions are logged with ``status="error"`` and re-raised.
    """
    logger = logger or get_logger()
    context = {"operation": operation_name, **extra_fields}
    started = time.monotonic()
    logger.info(f"Starting: {operation_name}", extra=context)

    try:
        yield
    except Exception as e:
        logger.error(
            f"Failed: {operation_name}",
            extra={
                **context,
                "duration_seconds": round(time.monotonic() - started, 3),
                "status": "error",
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
            exc_info=True,
        )
        raise

    logger.info(
        f"Completed: {operation_name}",
        extra={
            **context,
            "duration_seconds": round(time.monotonic() - started, 3),
            "status": "success",
        },
    )
