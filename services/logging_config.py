"""
Structured Logging Configuration
Version: 1.1.0

structlog on top of the standard library. JSON lines in production,
coloured console in development. Every entry logged while a request is
being handled carries that request's trace id and actor.
"""
import logging
import os
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog


# Guest contact details stay out of production logs
PERSONAL_KEYS = frozenset({"email", "recipient", "phone"})


def bind_request_context(trace_id: str, actor_id: Optional[str] = None) -> None:
    """Called once per request by the HTTP middleware."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(trace_id=trace_id)
    if actor_id:
        structlog.contextvars.bind_contextvars(actor_id=actor_id)


def get_trace_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("trace_id")


def add_timestamp(logger, method_name, event_dict):
    event_dict['timestamp'] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_service_info(logger, method_name, event_dict):
    event_dict['service'] = os.getenv('APP_NAME', 'kreol-backoffice')
    event_dict['environment'] = os.getenv('APP_ENV', 'development')
    return event_dict


def mask_personal_data(logger, method_name, event_dict):
    for key in PERSONAL_KEYS & event_dict.keys():
        value = event_dict[key]
        if isinstance(value, str) and len(value) > 3:
            event_dict[key] = value[:3] + "***"
    return event_dict


def rename_event_key(logger, method_name, event_dict):
    if 'event' in event_dict:
        event_dict['message'] = event_dict.pop('event')
    return event_dict


def configure_logging(json_format: Optional[bool] = None, log_level: str = "INFO") -> None:
    """
    Configure structlog and the root logger.

    Args:
        json_format: JSON lines when True, console renderer when False.
                     None picks JSON only for APP_ENV=production.
        log_level: Minimum level for both structlog and stdlib loggers.
    """
    if json_format is None:
        json_format = os.getenv('APP_ENV', 'development') == 'production'

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors += [
            add_service_info,
            mask_personal_data,
            rename_event_key,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    for noisy in ('sqlalchemy.engine', 'asyncpg', 'httpx', 'httpcore'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class LogTimer:
    """
    Logs "<operation> completed" or "<operation> failed" with the elapsed
    time. Fields added through note() are logged with the outcome.

    Usage:
        with LogTimer(logger, "Restore", version="1.1") as timer:
            ...
            timer.note(rows=412)
    """

    def __init__(self, logger, operation: str, **extra):
        self.logger = logger
        self.operation = operation
        self.extra: Dict[str, Any] = dict(extra)
        self._started = 0.0

    def note(self, **fields) -> None:
        self.extra.update(fields)

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = round((time.perf_counter() - self._started) * 1000, 2)

        if exc_type:
            self.logger.error(f"{self.operation} failed", duration_ms=duration_ms, error=str(exc_val), **self.extra)
        else:
            self.logger.info(f"{self.operation} completed", duration_ms=duration_ms, **self.extra)

        return False
