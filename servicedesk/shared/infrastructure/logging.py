"""
Structured Logging
==================

JSON log lines for the service desk.

Every record carries the UTC timestamp, the environment and, while an HTTP
request or escalation sweep is in flight, its correlation id. Secrets such
as webhook URLs are masked before the line is written.

Usage:
    from servicedesk.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Ticket assigned", extra={"ticket_id": ticket_id, "technician_id": user_id})
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from pythonjsonlogger import jsonlogger

REDACTED = "***REDACTED***"
SECRET_MARKERS = ("password", "token", "api_key", "secret", "webhook")

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Libraries whose INFO output drowns out ticket events.
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.ERROR,
    "sqlalchemy.engine": logging.WARNING,
    "apscheduler": logging.WARNING,
    "httpx": logging.WARNING,
    "watchdog": logging.WARNING,
}


def bind_correlation_id(correlation_id: Optional[str]):
    """Attach a correlation id to every record logged from the current task."""
    return _correlation_id.set(correlation_id)


def reset_correlation_id(token) -> None:
    _correlation_id.reset(token)


class ServiceDeskJsonFormatter(jsonlogger.JsonFormatter):
    """Adds timestamp, environment and correlation id; masks secret fields."""

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["environment"] = self.environment

        # An explicit extra wins over the bound context.
        if not log_record.get("correlation_id"):
            bound = _correlation_id.get()
            if bound:
                log_record["correlation_id"] = bound

        for key, value in list(log_record.items()):
            if isinstance(value, str) and any(marker in key.lower() for marker in SECRET_MARKERS):
                log_record[key] = REDACTED


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """
    Route all logging to stdout as JSON.

    Args:
        level: Root level name (DEBUG, INFO, WARNING, ERROR)
        environment: Value stamped on every record
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        ServiceDeskJsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
            environment=environment,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any) -> Iterator[None]:
    """
    Log how long the wrapped block took, whether or not it raised.

    Usage:
        with log_latency(logger, "escalation_sweep"):
            result = await monitor.run_sweep()
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                **extra_context,
            },
        )
