"""
Logging configuration for MediMind.

structlog throughout: JSON lines in production, coloured console output in
debug. Request-scoped values (request id, proxy action) ride on contextvars
so every line emitted while serving a request carries them.

Medical text and credentials never reach the log: fields that could hold
document content, answers or keys are masked before rendering.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional

import structlog
from structlog.types import Processor

from medimind.config import settings

# Event keys whose values may contain patient data or secrets
REDACTED_KEYS = frozenset({
    "content",
    "answer",
    "query",
    "summary",
    "text",
    "audio_data",
    "api_key",
    "gemini_api_key",
})


def redact_sensitive(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace sensitive values with their length."""
    for key in REDACTED_KEYS.intersection(event_dict):
        value = event_dict[key]
        size = len(value) if isinstance(value, (str, bytes)) else None
        event_dict[key] = f"<redacted len={size}>" if size is not None else "<redacted>"
    return event_dict


def _renderer(json_format: bool) -> Processor:
    if json_format:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def configure_logging(
    log_level: Optional[str] = None,
    json_format: bool = True
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Override log level (defaults to settings.log_level)
        json_format: JSON lines (True) or console format (False)
    """
    numeric_level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors.append(structlog.processors.format_exc_info)
    processors.append(_renderer(json_format))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # httpx and the genai SDK log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str = "medimind") -> structlog.BoundLogger:
    """Structured logger tagged with the component name."""
    return structlog.get_logger(name)


def bind_context(**values: Any) -> None:
    """Attach key/value pairs to every log line in the current context."""
    structlog.contextvars.bind_contextvars(**values)


def clear_context() -> None:
    """Drop all context bound with bind_context."""
    structlog.contextvars.clear_contextvars()


configure_logging(log_level=settings.log_level, json_format=not settings.debug)
