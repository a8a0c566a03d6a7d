"""
Structured JSON Logging Configuration for the Lifecycle Controller

Provides:
- JSON formatted logs for easy parsing (Loki, ELK, etc.)
- Per-node context through ``extra={"node": ...}``
- Log level filtering via environment variable
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

# LogRecord attributes that are not user supplied extras
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
))

NOISY_LOGGERS = ("kubernetes", "urllib3", "botocore", "boto3", "azure", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2026-10-19T19:30:00.000Z",
        "level": "INFO",
        "logger": "lifecycle_controller.reconciler",
        "message": "Deleting node ...",
        "extra": {"node": "..."}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_obj["extra"] = extra_fields

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_to_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure structured logging for the controller.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (True) or standard format (False)
        log_to_file: Optional file path for log output

    Returns:
        Configured root logger
    """
    level = os.environ.get("LIFECYCLE_LOG_LEVEL", level).upper()
    json_format = os.environ.get("LIFECYCLE_LOG_JSON", str(json_format)).lower() == "true"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_to_file:
        file_handler = logging.FileHandler(log_to_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Reduce noise from SDKs and the probe server
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_uvicorn_log_config(json_format: bool = True) -> dict:
    """
    Get uvicorn logging configuration compatible with our setup.

    Pass this to uvicorn.Config(log_config=...) so probe server logs share
    the controller's format. Access logs are dropped; probes hit them constantly.
    """
    formatters = {}
    handler = {
        "class": "logging.StreamHandler",
        "stream": "ext://sys.stdout",
    }
    if json_format:
        formatters["json"] = {"()": "lifecycle_controller.logging_config.JSONFormatter"}
        handler["formatter"] = "json"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {"default": handler},
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": [], "level": "CRITICAL", "propagate": False},
        },
    }
