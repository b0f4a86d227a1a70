"""
vestlock - Structured Logging Configuration

Every record is rendered as one JSON object carrying the message, the
``extra`` fields passed by the caller (``event``, ``beneficiary``, ``amount``
and so on), plus service, environment and source location.

Usage:
    from vestlock.core.logging_config import setup_logging

    setup_logging(name="vestlock", log_file="logs/vestlock.json", level="INFO")
    logging.getLogger("vestlock.core.vesting_ledger").info(
        "Ledger loaded", extra={"event": "ledger.loaded"}
    )
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pythonjsonlogger import jsonlogger

DEFAULT_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps service, environment and call site on each record."""

    def __init__(
        self,
        fmt: str = DEFAULT_FORMAT,
        timestamp: bool = True,
        environment: Optional[str] = None,
        service_name: str = "vestlock",
    ):
        super().__init__(fmt=fmt)
        self.timestamp = timestamp
        self.environment = environment or "production"
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        # Overrides the offset-style timestamp written by the base class
        if self.timestamp:
            now = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_record["timestamp"] = now.isoformat().replace("+00:00", "Z")
        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()

        log_record["service"] = self.service_name
        log_record["environment"] = self.environment
        log_record["source"] = {
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }


def _build_handlers(
    formatter: logging.Formatter,
    level: int,
    log_file: Optional[str],
    enable_console: bool,
    enable_file: bool,
    max_bytes: int,
    backup_count: int,
) -> Tuple[List[logging.Handler], Optional[OSError]]:
    handlers: List[logging.Handler] = []
    file_error: Optional[OSError] = None

    # stderr keeps --json-output on stdout clean for the CLI
    if enable_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    if enable_file and log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(
                logging.handlers.RotatingFileHandler(
                    filename=log_file, maxBytes=max_bytes, backupCount=backup_count
                )
            )
        except OSError as e:
            file_error = e

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers, file_error


def setup_logging(
    name: str = "vestlock",
    log_file: Optional[str] = None,
    level: str = "INFO",
    environment: str = "production",
    enable_console: bool = True,
    enable_file: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure JSON logging for ``name`` and everything below it.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        name: Logger name, usually the package name
        log_file: Rotating JSON log file, used when ``enable_file`` is set
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        environment: Value of the ``environment`` field
        enable_console: Log to stderr
        enable_file: Log to ``log_file``
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The configured logger
    """
    numeric_level = getattr(logging, level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = CustomJsonFormatter(environment=environment, service_name=name.split(".")[0])
    handlers, file_error = _build_handlers(
        formatter, numeric_level, log_file, enable_console, enable_file, max_bytes, backup_count
    )
    for handler in handlers:
        logger.addHandler(handler)

    # Keep records away from logging.lastResort when every output is disabled
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    if file_error is not None:
        logger.warning("Could not open log file %s: %s", log_file, file_error)

    return logger


def get_logger(name: str, log_file: Optional[str] = None, level: str = "INFO") -> logging.Logger:
    """Return ``name``'s logger, configuring it first if it has no handlers."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    return setup_logging(name=name, log_file=log_file, level=level)
