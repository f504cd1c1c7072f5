"""
Structured Logging Configuration Module

JSON log lines for transfers, receipts and retention sweeps. Each HTTP
request runs inside a correlation context so every line it produces
carries the same correlation id.
"""

import contextvars
import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional


_STRUCTURED_FIELDS = ("owner_id", "action", "resource", "extra")

# Correlation id of the request being served, if any
_correlation_id = contextvars.ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """Bind a correlation id (a fresh one when None) for the enclosed block"""
    token = _correlation_id.set(correlation_id or uuid.uuid4().hex)
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record):
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }
        for name in _STRUCTURED_FIELDS:
            entry[name] = getattr(record, name, None)

        entry = {k: v for k, v in entry.items() if v is not None}
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "payments",
                  log_format: str = "json") -> logging.Logger:
    """
    Configure the application logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Parent logger of every payments module
        log_format: "json" for structured lines, "text" for plain ones

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    return logger


def get_logger(name: str = "payments") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               owner_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log a business event with structured fields.

    Args:
        logger: Module logger
        level: Level name (info, warning, error, ...)
        message: Human readable message
        owner_id: Account owner the event concerns
        action: Event name, e.g. "transfer" or "purge_artifact"
        resource: Account id, transaction id or artifact name
        extra: Additional structured data
    """
    level_no = getattr(logging, level.upper())
    if not logger.isEnabledFor(level_no):
        return

    record = logger.makeRecord(logger.name, level_no, __name__, 0, message, (), None)
    fields = {"owner_id": owner_id, "action": action, "resource": resource, "extra": extra}
    for name, value in fields.items():
        if value:
            setattr(record, name, value)

    logger.handle(record)
