"""
Structured logging for the Bridge connector.

Every line is a JSON object. Besides the event name, timestamp, level and
logger, lines may carry:
- request_id: the inbound POST /hooks call (X-Request-ID)
- event_id, customer_id: the Algoan event a dispatch task is working on
- duration_ms: set by TimedOperation

Context fields are bound with structlog.contextvars. A dispatch task starts
with a copy of the request's context, so its lines keep the request_id even
after the request itself has been answered.
"""
import logging
import sys
import time
import uuid
from typing import Any, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

from connector.config import settings


def configure_logging(level: Optional[str] = None) -> None:
    """Route structlog through the stdlib root logger as JSON lines."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=(level or settings.log_level).upper(),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def set_request_context(request_id: str) -> None:
    """Start a fresh context for an inbound call."""
    clear_contextvars()
    bind_contextvars(request_id=request_id)


def set_event_context(event_id: str, customer_id: Optional[str] = None) -> None:
    """Tag the current dispatch task with the event it handles."""
    if customer_id:
        bind_contextvars(event_id=event_id, customer_id=customer_id)
    else:
        bind_contextvars(event_id=event_id)


def clear_request_context() -> None:
    clear_contextvars()


class TimedOperation:
    """
    Log `<name>_started`, then `<name>_completed` or `<name>_failed` with
    the elapsed time. Exceptions are never suppressed.

        with TimedOperation("aggregator_link", logger, customer_id=customer_id):
            ...
    """

    def __init__(
        self,
        name: str,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        **fields: Any,
    ):
        self.name = name
        self.logger = (logger or get_logger()).bind(**fields)
        self.duration_ms: float = 0
        self._started: float = 0

    def __enter__(self) -> "TimedOperation":
        self._started = time.perf_counter()
        self.logger.info(f"{self.name}_started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = round((time.perf_counter() - self._started) * 1000, 2)

        if exc_type is None:
            self.logger.info(f"{self.name}_completed", duration_ms=self.duration_ms)
            return

        self.logger.error(
            f"{self.name}_failed",
            duration_ms=self.duration_ms,
            error=str(exc_val),
            error_type=exc_type.__name__,
        )
