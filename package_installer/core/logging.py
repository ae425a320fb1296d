# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Logging for installer runs.

Every module logs through logging.getLogger(__name__) under the
"package_installer" logger; configure_logging attaches the handlers
once per process. Unattended runs (build agents, CI) use the json
format so run summaries and per-package fields can be parsed.
"""

import logging
import json
import sys
from datetime import datetime, UTC
from typing import IO, Optional, Any, Union
from pathlib import Path

ROOT_LOGGER = "package_installer"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fields passed through log_event (run_id, package, outcome, ...) are
    written next to the standard ones.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable lines for interactive runs."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


def get_logger(
    name: str = ROOT_LOGGER,
    log_level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[Union[str, Path]] = None,
    stream: Optional[IO[str]] = None
) -> logging.Logger:
    """
    Replace the handlers of a logger.

    Args:
        name: Logger name, the package root by default
        log_level: One of LOG_LEVELS (case-insensitive)
        log_format: One of LOG_FORMATS
        log_file: Optional file that receives the same records
        stream: Console stream, stderr by default

    Raises:
        ValueError: On an unknown level or format
    """
    level = log_level.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {log_level}")
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {log_format}")

    logger = logging.getLogger(name)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = JSONFormatter() if log_format == "json" else TextFormatter()

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """Attach handlers to the package root logger; records do not reach the root logger."""
    logger = get_logger(ROOT_LOGGER, log_level=log_level, log_format=log_format, log_file=log_file)
    logger.propagate = False
    return logger


def log_event(
    logger: logging.Logger,
    event: str,
    level: str = "INFO",
    **kwargs: Any
) -> None:
    """Log a message with structured fields (kept as keys by JSONFormatter)."""
    log_func = getattr(logger, level.lower())
    log_func(event, extra=kwargs)
