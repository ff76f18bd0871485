"""
Structured logging utilities for the domain event bus.
"""

import json
import logging
import sys
from typing import Any, Dict, Optional

_RECORD_ATTRIBUTES = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
})


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs one JSON object per line so events can be shipped to aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRIBUTES
        }
        if extra_fields:
            log_data["context"] = extra_fields

        return json.dumps(log_data, default=str)


class SubscriptionLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that tags every record with the subscription's debug name.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def get_subscription_logger(debug_name: Optional[str] = None) -> SubscriptionLoggerAdapter:
    """
    Get a logger with subscription context automatically included.

    Args:
        debug_name: Name identifying the subscriber; "Unknown" when omitted

    Returns:
        Logger adapter with ``debug_name`` context
    """
    logger = logging.getLogger("domain_event_bus.subscriptions")
    return SubscriptionLoggerAdapter(logger, {"debug_name": debug_name or "Unknown"})


def setup_logging(
    level: int = logging.INFO,
    structured: bool = False,
    stream: Optional[Any] = None,
) -> None:
    """
    Configure logging for the event bus loggers.

    Args:
        level: Logging level (default: INFO)
        structured: Use JSON structured logging (default: False)
        stream: Output stream (default: sys.stdout)
    """
    root_logger = logging.getLogger("domain_event_bus")
    root_logger.setLevel(level)

    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)

    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        )

    root_logger.addHandler(handler)


def log_bus_event(
    logger: logging.Logger,
    level: int,
    message: str,
    bus: str,
    event_type: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """
    Log a bus-related occurrence with structured context.

    Args:
        logger: Logger instance
        level: Log level
        message: Log message
        bus: Name of the bus
        event_type: Optional event type identifier
        **kwargs: Additional context fields
    """
    extra: Dict[str, Any] = {"bus": bus}
    if event_type:
        extra["event_type"] = event_type
    extra.update(kwargs)

    logger.log(level, message, extra=extra)
