"""Logging configuration utilities."""

import logging
import sys
from typing import Optional

import structlog
from structlog.contextvars import bind_contextvars


SENSITIVE_KEYS = {
    "password",
    "secret",
    "token",
    "githubtoken",
    "default_token",
    "api_key",
    "apikey",
    "authorization",
    "auth",
}


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Redact sensitive fields in the structured log."""
    for key in list(event_dict.keys()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "[REDACTED]"
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging."""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_sensitive,
    ]

    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def bind_deployment_context(project: Optional[str] = None, mode: Optional[str] = None) -> None:
    """Bind correlation fields for deployment logs using contextvars."""
    if project:
        bind_contextvars(project=project)
    if mode:
        bind_contextvars(mode=mode)
